"""Name to factory registry for steps and step templates."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional

import networkx as nx

from ..error_coordination import HandlerException, StepNotFoundError
from .base import Step

logger = logging.getLogger(__name__)

StepFactory = Callable[..., Step]


@dataclass
class StepTemplate:
    """Named, pre-configured recipe for creating a step of a registered kind."""

    name: str
    kind: str
    options: Dict[str, Any] = field(default_factory=dict)


class StepRegistry:
    """Registry of step factories and templates.

    Factories are keyed by step kind. Templates bind a name to a kind plus
    default options; ``create`` accepts either. Call-site options override
    template options.

    Example:
        >>> registry = StepRegistry()
        >>> registry.register("AnalysisStep", AnalysisStep)
        >>> registry.register_template("architecture", "AnalysisStep", {"handler": handler})
        >>> step = registry.create("architecture", {"name": "arch-1"})
    """

    def __init__(self):
        self._factories: Dict[str, StepFactory] = {}
        self._templates: Dict[str, StepTemplate] = {}
        self._lock = Lock()

    def register(self, kind: str, factory: StepFactory) -> None:
        """Register a factory for ``kind``; re-registration replaces it.

        Raises:
            HandlerException: REGISTRY kind for an empty name or non-callable factory
        """
        if not kind or not isinstance(kind, str):
            raise HandlerException.registry_error(f"Invalid step kind: {kind!r}")
        if not callable(factory):
            raise HandlerException.registry_error(f"Step factory for '{kind}' is not callable")
        with self._lock:
            if kind in self._factories:
                logger.debug(f"Replacing step factory for {kind}")
            self._factories[kind] = factory

    def unregister(self, kind: str) -> bool:
        with self._lock:
            return self._factories.pop(kind, None) is not None

    def has(self, name: str) -> bool:
        """Whether ``name`` is a registered kind or template."""
        with self._lock:
            return name in self._factories or name in self._templates

    def list_kinds(self) -> List[str]:
        with self._lock:
            return list(self._factories)

    def register_template(self, name: str, kind: str, options: Optional[Dict[str, Any]] = None) -> StepTemplate:
        """Bind ``name`` to ``kind`` with default options.

        Raises:
            StepNotFoundError: If ``kind`` is not registered
        """
        with self._lock:
            if kind not in self._factories:
                raise StepNotFoundError(kind, list(self._factories))
            template = StepTemplate(name=name, kind=kind, options=dict(options or {}))
            self._templates[name] = template
        logger.debug(f"Registered step template {name} -> {kind}")
        return template

    def unregister_template(self, name: str) -> bool:
        with self._lock:
            return self._templates.pop(name, None) is not None

    def get_template(self, name: str) -> Optional[StepTemplate]:
        with self._lock:
            return self._templates.get(name)

    def list_templates(self) -> List[str]:
        with self._lock:
            return list(self._templates)

    def create(self, name: str, options: Optional[Dict[str, Any]] = None) -> Step:
        """Create a step from a registered kind or template.

        Args:
            name: Step kind or template name; kinds take precedence
            options: Constructor options for the step

        Returns:
            New Step instance

        Raises:
            StepNotFoundError: If ``name`` is neither a kind nor a template
            HandlerException: FACTORY kind if the factory raises or returns a non-step
        """
        with self._lock:
            factory = self._factories.get(name)
            merged = dict(options or {})
            if factory is None:
                template = self._templates.get(name)
                if template is None:
                    raise StepNotFoundError(name, list(self._factories) + list(self._templates))
                factory = self._factories.get(template.kind)
                if factory is None:
                    raise StepNotFoundError(template.kind, list(self._factories))
                merged = {**template.options, **merged}
                merged.setdefault("name", template.name)

        try:
            step = factory(**merged)
        except Exception as e:
            raise HandlerException.factory_error(
                f"Failed to create step '{name}': {e}",
                {"step": name},
            ) from e

        if not isinstance(step, Step):
            raise HandlerException.factory_error(
                f"Factory for '{name}' returned {type(step).__name__}, not a Step",
                {"step": name},
            )
        return step

    @staticmethod
    def to_dag(steps: Iterable[Step]) -> nx.DiGraph:
        """Build a dependency graph of ``steps`` keyed by step name.

        Raises:
            HandlerException: VALIDATION kind on unknown dependencies or cycles
        """
        steps = list(steps)
        dag = nx.DiGraph()
        for step in steps:
            dag.add_node(step.name, step=step)

        for step in steps:
            for dep in step.dependencies:
                if dep not in dag:
                    raise HandlerException.validation_error(
                        f"Step {step.name} depends on unknown step {dep}",
                        {"step": step.name, "dependency": dep},
                    )
                dag.add_edge(dep, step.name)

        if not nx.is_directed_acyclic_graph(dag):
            cycle = [edge[0] for edge in nx.find_cycle(dag)]
            raise HandlerException.validation_error(
                f"Step dependencies contain a cycle: {' -> '.join(cycle)}",
                {"cycle": cycle},
            )
        return dag

    def resolve_execution_order(self, steps: Iterable[Step]) -> List[Step]:
        """Order ``steps`` so every step follows its dependencies.

        Ties keep the input order.
        """
        steps = list(steps)
        dag = self.to_dag(steps)
        position = {step.name: index for index, step in enumerate(steps)}
        ordered = nx.lexicographical_topological_sort(dag, key=lambda name: position[name])
        return [dag.nodes[name]["step"] for name in ordered]

    def __len__(self) -> int:
        with self._lock:
            return len(self._factories)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)
