"""
Evaluation context for narrative templates.
Provides the variable scope chain seen by expressions during one evaluation.
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class IncludeParameterBag(Mapping):
    """
    Property bag bound as ``include`` inside an included template.

    Maps each include parameter name to the items its expression produced
    in the caller's context. Read-only once the include starts rendering.
    """

    def __init__(self):
        self._properties: Dict[str, List[Any]] = {}

    def add_property(self, name: str, values: List[Any]) -> None:
        self._properties[name] = list(values)

    def __getitem__(self, name: str) -> List[Any]:
        return self._properties[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._properties)

    def __len__(self) -> int:
        return len(self._properties)

    def __repr__(self) -> str:
        return f"<IncludeParameterBag {self._properties!r}>"


class TemplateEnvironment:
    """
    A scope in the evaluation of a template.

    Holds the caller-supplied external context, the names bound in this scope
    and an optional parent scope. Lookups walk local bindings, then parents.
    Definitions only ever touch the local scope, so a child never changes
    what its parent sees.
    """

    def __init__(
        self,
        external_context: Any = None,
        bindings: Optional[Dict[str, Any]] = None,
        parent: Optional['TemplateEnvironment'] = None,
        include_chain: Tuple[str, ...] = ()
    ):
        """
        Initializes a new TemplateEnvironment.

        Args:
            external_context: Opaque application context supplied by the caller of evaluate().
            bindings: Initial variable bindings for this scope.
            parent: Enclosing scope, or None for a root scope.
            include_chain: Names of the includes being rendered, outermost first.
        """
        self.external_context = external_context
        self._bindings: Dict[str, Any] = bindings if bindings is not None else {}
        self._parent = parent
        self.include_chain = include_chain

    def lookup(self, name: str) -> Optional[Any]:
        """
        Looks up a name in this scope and its ancestors.

        Returns:
            The bound value, or None if the name is not bound anywhere in the chain.
        """
        env: Optional[TemplateEnvironment] = self
        while env is not None:
            if name in env._bindings:
                return env._bindings[name]
            env = env._parent
        logger.debug(f"'{name}' is not bound in env {id(self)}")
        return None

    def define(self, name: str, value: Any) -> None:
        """Binds (or rebinds) a name in the *current* scope only."""
        self._bindings[name] = value

    def extend(self, bindings: Optional[Dict[str, Any]] = None) -> 'TemplateEnvironment':
        """
        Creates a child scope with this environment as parent.

        The child shares the external context and include chain.
        """
        return TemplateEnvironment(
            external_context=self.external_context,
            bindings=dict(bindings or {}),
            parent=self,
            include_chain=self.include_chain
        )

    def for_include(self, include_name: str, parameters: IncludeParameterBag) -> 'TemplateEnvironment':
        """
        Creates the root scope for an included template.

        None of this scope's bindings are visible there; only the external
        context and the single ``include`` binding carry over.
        """
        return TemplateEnvironment(
            external_context=self.external_context,
            bindings={"include": parameters},
            include_chain=self.include_chain + (include_name,)
        )

    def __repr__(self) -> str:
        parent_id = id(self._parent) if self._parent else None
        return f"<TemplateEnvironment id={id(self)} parent={parent_id} bindings={list(self._bindings.keys())}>"
