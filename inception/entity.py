"""Entities, their components and the registry that stores them."""

from __future__ import annotations

import itertools
import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, TypeVar

import numpy as np

C = TypeVar("C", bound="Component")


@dataclass(eq=False)
class Component:
    """Base of all components; knows the entity it is installed on."""

    possessor: Entity | None = field(default=None, repr=False)


@dataclass(eq=False)
class EntityDataComponent(Component):
    """Identity and display name of an entity."""

    guid: uuid.UUID = field(default_factory=uuid.uuid4)
    name: str = ""


@dataclass(eq=False)
class XFormComponent(Component):
    """Placement of an entity and its links in the transform hierarchy."""

    parent: XFormComponent | None = field(default=None, repr=False)
    children: list[XFormComponent] = field(default_factory=list, repr=False)
    entity: Entity | None = field(default=None, repr=False)
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    quaternion: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0]))
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))


class Registry:
    """Maps entity handles to at most one component of each type."""

    def __init__(self) -> None:
        self._next_handle = itertools.count()
        self._entities: dict[int, None] = {}
        self._pools: dict[type, dict[int, Any]] = {}

    def create(self) -> int:
        """Create a new entity and return its handle."""
        handle = next(self._next_handle)
        self._entities[handle] = None
        return handle

    def _check(self, entity: int) -> None:
        if entity not in self._entities:
            raise KeyError(f"entity {entity} does not exist")

    def emplace(self, entity: int, component: C) -> C:
        """Attach ``component`` to ``entity``; each type may be attached once."""
        self._check(entity)
        pool = self._pools.setdefault(type(component), {})
        if entity in pool:
            raise ValueError(f"entity {entity} already has a {type(component).__name__}")
        pool[entity] = component
        return component

    def has(self, entity: int, component_type: type) -> bool:
        """Whether ``entity`` carries a component of this type."""
        return entity in self._pools.get(component_type, {})

    def get(self, entity: int, component_type: type[C]) -> C:
        """Return the component of this type; KeyError if absent."""
        try:
            return self._pools[component_type][entity]
        except KeyError:
            raise KeyError(f"entity {entity} has no {component_type.__name__}") from None

    def remove(self, entity: int, component_type: type) -> None:
        """Detach the component of this type; KeyError if absent."""
        pool = self._pools.get(component_type, {})
        if entity not in pool:
            raise KeyError(f"entity {entity} has no {component_type.__name__}")
        del pool[entity]

    def view(self, *args: type) -> Iterator[tuple[Any, ...]]:
        """Yield ``(entity, component, ...)`` for entities holding every given type."""
        if not args:
            raise TypeError("view needs at least one component type")
        pools = [self._pools.get(component_type, {}) for component_type in args]
        for entity in self._entities:
            if all(entity in pool for pool in pools):
                yield (entity, *(pool[entity] for pool in pools))


class Entity:
    """A handle in a registry with convenient component access."""

    def __init__(self, registry: Registry, handle: int | None = None) -> None:
        self.registry = registry
        self.handle = registry.create() if handle is None else handle

    def __repr__(self) -> str:
        return f"Entity(handle={self.handle})"

    def install_component(self, component: C) -> C:
        """Attach a component and make this entity its possessor."""
        if self.has_component(type(component)):
            raise ValueError(f"{self!r} already has a {type(component).__name__}")
        self.registry.emplace(self.handle, component)
        component.possessor = self
        if isinstance(component, XFormComponent):
            component.entity = self
        return component

    def has_component(self, component_type: type) -> bool:
        """Whether a component of this type is installed."""
        return self.registry.has(self.handle, component_type)

    def access_component(self, component_type: type[C]) -> C:
        """Return the installed component of this type; KeyError if absent."""
        return self.registry.get(self.handle, component_type)

    def uninstall_component(self, component_type: type) -> None:
        """Remove the installed component of this type; KeyError if absent."""
        self.registry.remove(self.handle, component_type)