"""
Configuration management for hybrid feeding-model simulations.

Handles loading, validation, and defaulting of YAML configuration files.
Model constants live in the frozen ModelParams dataclass; it is built once
and handed to every evaluator, never mutated afterwards.
"""

from dataclasses import dataclass, field, asdict, replace
from pathlib import Path
from typing import Optional, Union, Sequence
import math

import numpy as np
from numpy.typing import NDArray
import yaml

from .errors import ConfigError


DEFAULT_XINIT = [
    0.900321164137428,
    0.083551935956201,
    0.000031666995903,
    0.747647099749367,
    0.246345045901938,
    0.649984712236374,
    -8.273162075117845,
    0.01,
]
DEFAULT_VINIT = [0.0, 0.0, 0.0, 0.0, 0.0, 0.0]
DEFAULT_HORIZON = 4.886087799072266  # one period of the default limit cycle

SOLVER_METHODS = ("BDF", "Radau", "LSODA", "RK45", "DOP853")


@dataclass(frozen=True)
class ModelParams:
    """Physical constants of the feeding model."""
    eps1: float = 1e-4  # sensory feedback gains
    eps2: float = 1e-4
    eps3: float = 1e-4
    tau_a: float = 0.05  # neural activity time constant
    tau_m: float = 2.45  # muscle activation time constant
    mu: float = 1e-6
    gamma: float = 2.4  # mutual inhibition strength
    s1: float = 0.5  # feedback switching positions
    s2: float = 0.5
    s3: float = 0.25
    sig1: float = -1.0  # feedback signs
    sig2: float = 1.0
    sig3: float = 1.0
    umax: float = 1.0  # peak muscle activation
    br: float = 0.4  # grasper damping constant
    w0: float = 2.0  # maximal effective length of I2
    w1: float = 1.1  # maximal effective length of I3
    c0: float = 1.0  # position of shortest length for I2
    c1: float = 1.1  # position of shortest length for I3
    k0: float = 1.0  # protractor muscle strength
    k1: float = -1.0  # retractor muscle strength

    @property
    def eps(self) -> tuple[float, float, float]:
        return (self.eps1, self.eps2, self.eps3)

    @property
    def s(self) -> tuple[float, float, float]:
        return (self.s1, self.s2, self.s3)

    @property
    def sig(self) -> tuple[float, float, float]:
        return (self.sig1, self.sig2, self.sig3)


@dataclass(frozen=True)
class GrasperGeometry:
    """
    Open/close threshold surface g(y, z) = weight_y*y + weight_z*z - threshold.

    The grasper is closed where g > 0. The default is the surface y + z = 0.5.
    """
    weight_y: float = 1.0
    weight_z: float = 1.0
    threshold: float = 0.5

    @classmethod
    def from_angle(cls, angle: float, threshold: float) -> "GrasperGeometry":
        """Surface whose normal in the (y, z) plane points along `angle`."""
        return cls(weight_y=math.cos(angle), weight_z=math.sin(angle), threshold=threshold)

    def value(self, y: float, z: float) -> float:
        return self.weight_y * y + self.weight_z * z - self.threshold

    @property
    def normal(self) -> NDArray[np.float64]:
        """Surface normal in the 6-d physical space."""
        return np.array([0.0, self.weight_y, self.weight_z, 0.0, 0.0, 0.0])

    @property
    def tangent(self) -> NDArray[np.float64]:
        """Direction within the (y, z) plane that lies in the surface."""
        return np.array([0.0, self.weight_z, -self.weight_y, 0.0, 0.0, 0.0])


@dataclass
class RunConfig:
    """Run-level configuration."""
    out_dir: str = "out"
    run_name: Optional[str] = None


@dataclass
class InitialConfig:
    """Initial condition and horizon of a single solve."""
    xinit: list[float] = field(default_factory=lambda: list(DEFAULT_XINIT))
    vinit: list[float] = field(default_factory=lambda: list(DEFAULT_VINIT))
    t_init: float = 0.0
    horizon: float = DEFAULT_HORIZON
    nu: Union[float, list[float]] = 0.0  # sustained perturbation spec
    lyapunov: bool = False


@dataclass
class SolverConfig:
    """Integrator and event-handling settings."""
    method: str = "BDF"
    rtol: float = 1e-10
    atol: float = 1e-12
    max_step: float = 1e-3
    event_tolerance: float = 1e-9  # |g| below this at a segment start is "on the surface"
    event_offset: float = 1e-12  # shift applied to such events
    zero_length: float = 1e-13  # segments shorter than this make no progress
    max_stalled_segments: int = 5
    jump_condition_warn: float = 1e8


@dataclass
class PeriodConfig:
    """Bisection period search settings."""
    lower: float = 4.5
    upper: float = 5.0
    max_iter: int = 20
    target: float = 1e-5


@dataclass
class SweepConfig:
    """Grasper-geometry sweep configuration."""
    n_angle: int = 60
    n_thresh: int = 75
    c_min: float = -0.5
    c_max: float = 1.5
    horizon: float = 40.0
    force: float = 0.01
    t_discard: float = 10.0


@dataclass
class Config:
    """Complete configuration for a hybrid model run."""
    run: RunConfig = field(default_factory=RunConfig)
    model: ModelParams = field(default_factory=ModelParams)
    grasper: GrasperGeometry = field(default_factory=GrasperGeometry)
    initial: InitialConfig = field(default_factory=InitialConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    period: PeriodConfig = field(default_factory=PeriodConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)

    def to_dict(self) -> dict:
        """Convert config to nested dictionary."""
        return {
            "run": {
                "out_dir": self.run.out_dir,
                "run_name": self.run.run_name,
            },
            "model": asdict(self.model),
            "grasper": {
                "weight_y": self.grasper.weight_y,
                "weight_z": self.grasper.weight_z,
                "threshold": self.grasper.threshold,
            },
            "initial": {
                "xinit": [float(v) for v in self.initial.xinit],
                "vinit": [float(v) for v in self.initial.vinit],
                "t_init": self.initial.t_init,
                "horizon": self.initial.horizon,
                "nu": list(self.initial.nu) if isinstance(self.initial.nu, (list, tuple)) else self.initial.nu,
                "lyapunov": self.initial.lyapunov,
            },
            "solver": asdict(self.solver),
            "period": asdict(self.period),
            "sweep": asdict(self.sweep),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Config":
        """Create Config from nested dictionary. Unknown keys are ignored."""
        config = cls()

        # Frozen sections are rebuilt rather than mutated
        if "model" in d:
            known = {k: v for k, v in d["model"].items() if hasattr(config.model, k)}
            config.model = replace(config.model, **known)

        if "grasper" in d:
            known = {k: v for k, v in d["grasper"].items() if hasattr(config.grasper, k)}
            config.grasper = replace(config.grasper, **known)

        for section in ("run", "initial", "solver", "period", "sweep"):
            if section in d:
                target = getattr(config, section)
                for key, value in d[section].items():
                    if hasattr(target, key):
                        setattr(target, key, value)

        return config


def as_numeric_array(name: str, value) -> NDArray[np.float64]:
    """
    Coerce a constructor argument to a non-empty float array.

    Raises
    ------
    ConfigError
        If the value is empty or not numeric.
    """
    if isinstance(value, (str, bytes)) or value is None:
        raise ConfigError(f"{name} must be numeric, got {value!r}")
    try:
        arr = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be numeric, got {value!r}") from exc
    if arr.size == 0:
        raise ConfigError(f"{name} must be non-empty")
    if not np.all(np.isfinite(arr)):
        raise ConfigError(f"{name} must be finite, got {value!r}")
    return arr


def as_scalar(name: str, value) -> float:
    """Coerce a constructor argument to a single float."""
    arr = as_numeric_array(name, value)
    if arr.size != 1:
        raise ConfigError(f"{name} must be a scalar, got {arr.size} values")
    return float(arr.reshape(-1)[0])


def load_config(path: Union[str, Path]) -> Config:
    """
    Load configuration from a YAML file.

    Parameters
    ----------
    path : str or Path
        Path to YAML configuration file.

    Returns
    -------
    Config
        Loaded and validated configuration.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}

    config = Config.from_dict(data)
    validate_config(config)
    return config


def _check_length(name: str, values: Sequence, n: int) -> None:
    arr = as_numeric_array(name, values)
    if arr.size != n:
        raise ConfigError(f"{name} must have {n} entries, got {arr.size}")


def validate_config(config: Config) -> None:
    """
    Validate configuration values.

    Parameters
    ----------
    config : Config
        Configuration to validate.

    Raises
    ------
    ConfigError
        If any configuration value is invalid.
    """
    # Model validation
    for key, value in asdict(config.model).items():
        as_scalar(f"model.{key}", value)
    if config.model.tau_a <= 0 or config.model.tau_m <= 0:
        raise ConfigError("tau_a and tau_m must be positive")
    if config.model.br <= 0:
        raise ConfigError("br must be positive")
    if config.model.w0 == 0 or config.model.w1 == 0:
        raise ConfigError("w0 and w1 must be non-zero")

    # Grasper validation
    if config.grasper.weight_y == 0 and config.grasper.weight_z == 0:
        raise ConfigError("grasper weights cannot both be zero")

    # Initial condition validation
    _check_length("initial.xinit", config.initial.xinit, 8)
    _check_length("initial.vinit", config.initial.vinit, 6)
    if np.any(np.asarray(config.initial.xinit[:3], dtype=float) < 0):
        raise ConfigError("initial activities a0, a1, a2 must be non-negative")
    if config.initial.horizon <= config.initial.t_init:
        raise ConfigError("horizon must be greater than t_init")

    # Solver validation
    if config.solver.method not in SOLVER_METHODS:
        raise ConfigError(f"Unknown solver method: {config.solver.method}")
    if config.solver.rtol <= 0 or config.solver.atol <= 0:
        raise ConfigError("rtol and atol must be positive")
    if config.solver.max_step <= 0:
        raise ConfigError("max_step must be positive")
    if config.solver.event_offset < 0 or config.solver.event_tolerance < 0:
        raise ConfigError("event_offset and event_tolerance must be non-negative")
    if config.solver.max_stalled_segments < 1:
        raise ConfigError("max_stalled_segments must be at least 1")

    # Period validation
    if config.period.max_iter < 1:
        raise ConfigError("period.max_iter must be at least 1")
    if config.period.target <= 0:
        raise ConfigError("period.target must be positive")
    if config.period.lower <= 0 or config.period.upper <= 0:
        raise ConfigError("period bounds must be positive")

    # Sweep validation
    if config.sweep.n_angle < 1:
        raise ConfigError("n_angle must be at least 1")
    if config.sweep.n_thresh < 1:
        raise ConfigError("n_thresh must be at least 1")
    if config.sweep.c_max < config.sweep.c_min:
        raise ConfigError("c_max must not be less than c_min")
    if config.sweep.horizon <= config.sweep.t_discard:
        raise ConfigError("sweep horizon must exceed t_discard")


def save_config(config: Config, path: Union[str, Path]) -> None:
    """
    Save configuration to a YAML file.

    Parameters
    ----------
    config : Config
        Configuration to save.
    path : str or Path
        Path to save YAML file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
