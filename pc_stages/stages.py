"""
Stage interface and registry for PC-Stages.

Every reader and filter implements the Stage interface. Stages are created
by name through a StageRegistry, which is filled by explicit
registration calls (see register_default_stages) rather than import-time
side effects.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from pc_stages.io.point_view import PointView

StageFactory = Callable[..., "Stage"]


class Stage(ABC):
    """Base class for readers and filters.

    Subclasses set ``name`` and ``description`` and implement
    :meth:`process`. :meth:`initialize` runs once before the first call to
    :meth:`process`; :meth:`finalize` runs after the last.
    """

    name: str = ""
    description: str = ""

    def initialize(self) -> None:
        """Prepare the stage for processing."""

    @abstractmethod
    def process(self, view: Optional[PointView] = None) -> PointView:
        """Produce (readers) or modify (filters) a point view."""

    def finalize(self) -> None:
        """Release anything acquired in :meth:`initialize`."""

    def execute(self, view: Optional[PointView] = None) -> PointView:
        """Run initialize, process and finalize in order."""
        self.initialize()
        try:
            return self.process(view)
        finally:
            self.finalize()


class StageRegistry:
    """Mapping of stage names to factory callables."""

    def __init__(self):
        self._factories: Dict[str, StageFactory] = {}
        self._descriptions: Dict[str, str] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._factories

    def register(self, name: str, factory: StageFactory, description: str = "") -> None:
        """
        Register a factory under ``name``.

        Raises
        ------
        ValueError
            If ``name`` is already registered.
        """
        if name in self._factories:
            raise ValueError(f"Stage already registered: {name}")
        self._factories[name] = factory
        self._descriptions[name] = description

    def create(self, name: str, **options) -> Stage:
        """
        Instantiate the stage registered under ``name``.

        Raises
        ------
        ValueError
            If no stage is registered under ``name``.
        """
        if name not in self._factories:
            raise ValueError(f"Unknown stage: {name}")
        return self._factories[name](**options)

    def names(self) -> List[str]:
        """Return registered stage names, sorted."""
        return sorted(self._factories)

    def describe(self, name: str) -> str:
        return self._descriptions[name]


def register_default_stages(registry: StageRegistry) -> StageRegistry:
    """Register the built-in reader and filter stages."""
    from pc_stages.io.qfit_reader import QfitReader
    from pc_stages.transform.filter import TransformationFilter

    for stage_cls in (QfitReader, TransformationFilter):
        registry.register(stage_cls.name, stage_cls, stage_cls.description)
    return registry
