"""Registry for stub resource handles with reverse-order disposal."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class Resource:
    """A long-lived handle owned by one test environment.

    Attributes
    ----------
    kind : str
        Name of the key the handle is bound to (e.g. "httpstub.server")
    handle : Any
        Resource handle passed to ``dispose_fn``
    dispose_fn : Callable
        Function releasing the resource: ``dispose_fn(handle)``
    owner : str
        Step module that acquired the resource
    """

    kind: str
    handle: Any
    dispose_fn: Callable[[Any], None]
    owner: str = ""


class ResourceRegistry:
    """Tracks owned resources and disposes them in reverse acquisition order.

    Disposal continues even if individual disposals fail; failures are
    logged and returned so the caller can attach them to the scenario
    outcome. Resources whose ownership was transferred elsewhere (for
    example to a persisted snapshot) are released without disposal.

    Attributes
    ----------
    resources : list[Resource]
        Registered resources in acquisition order
    """

    def __init__(self) -> None:
        self.resources: list[Resource] = []
        self._lock = threading.Lock()

    def register(
        self,
        kind: str,
        handle: Any,
        dispose_fn: Callable[[Any], None],
        owner: str = "",
    ) -> None:
        """Register a resource for disposal at teardown.

        Parameters
        ----------
        kind : str
            Key name the resource is bound under
        handle : Any
            Resource handle
        dispose_fn : Callable
            Disposal function taking the handle
        owner : str, optional
            Step module owning the resource
        """
        with self._lock:
            self.resources.append(Resource(kind, handle, dispose_fn, owner))
        logger.debug("Registered %s owned by %s", kind, owner or "<unknown>")

    def release(self, kind: str) -> list[Resource]:
        """Stop tracking every resource registered under ``kind``.

        Returns
        -------
        list[Resource]
            The released entries, which will no longer be disposed
        """
        with self._lock:
            released = [r for r in self.resources if r.kind == kind]
            self.resources = [r for r in self.resources if r.kind != kind]

        for resource in released:
            logger.debug("Released ownership of %s", resource.kind)

        return released

    def cleanup_all(self) -> list[str]:
        """Dispose all registered resources in reverse acquisition order.

        Returns
        -------
        list[str]
            Error messages for disposals that raised
        """
        with self._lock:
            resources = list(reversed(self.resources))
            self.resources = []

        errors: list[str] = []
        for resource in resources:
            try:
                resource.dispose_fn(resource.handle)
                logger.debug("Disposed %s", resource.kind)
            except Exception as e:
                message = f"Cleanup failed for {resource.kind}: {e}"
                logger.warning(message)
                errors.append(message)

        return errors
