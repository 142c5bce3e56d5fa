"""
feedcube: hybrid feeding-model simulator

A piecewise-smooth model of a biomechanical feeding apparatus. Three
mutually inhibiting neural units drive two muscles that move a grasper,
which pulls on an external load. The flow switches branch whenever an
activity touches zero or the grasper opens or closes; a variational
companion is carried across every switch with saltation matrices, giving
Lyapunov exponents, sensitivity to load, and phase-response curves.
"""

__version__ = "0.1.0"
__author__ = "feedcube developers"

from .config import (
    Config,
    GrasperGeometry,
    ModelParams,
    SolverConfig,
    load_config,
    save_config,
    validate_config,
)
from .domains import Domain, Grasper, classify_domain, classify_grasper
from .dynamics import Perturbation, jacobian, muscle_force, vector_field
from .errors import (
    ConfigError,
    ConvergenceWarning,
    FeedcubeError,
    NoProgressError,
    NotSolvedError,
    SolverError,
    TransitionError,
)
from .model import HybridModel
from .adjoint import PhaseResponse, phase_response
from .period import estimate_period
from .metrics import intake_rate
from .sweep import run_sweep, SweepResult
from .io import (
    save_results,
    load_results,
    save_solution,
    load_solution,
    create_run_folder,
    compute_config_hash,
)

__all__ = [
    # Version info
    "__version__",
    "__author__",
    # Config
    "Config",
    "GrasperGeometry",
    "ModelParams",
    "SolverConfig",
    "load_config",
    "save_config",
    "validate_config",
    # Domains
    "Domain",
    "Grasper",
    "classify_domain",
    "classify_grasper",
    # Dynamics
    "Perturbation",
    "jacobian",
    "muscle_force",
    "vector_field",
    # Errors
    "ConfigError",
    "ConvergenceWarning",
    "FeedcubeError",
    "NoProgressError",
    "NotSolvedError",
    "SolverError",
    "TransitionError",
    # Engine
    "HybridModel",
    "PhaseResponse",
    "phase_response",
    "estimate_period",
    # Analysis
    "intake_rate",
    "run_sweep",
    "SweepResult",
    # I/O
    "save_results",
    "load_results",
    "save_solution",
    "load_solution",
    "create_run_folder",
    "compute_config_hash",
]
