"""promptwild - Prompt wildcard and fragment expansion."""

__version__ = "0.1.0"

from promptwild.core.config import PromptwildConfig, config
from promptwild.core.fragment_processor import FragmentProcessor, has_choice_points
from promptwild.core.fragment_store import FragmentStore

__all__ = [
    "FragmentProcessor",
    "FragmentStore",
    "PromptwildConfig",
    "config",
    "has_choice_points",
]
