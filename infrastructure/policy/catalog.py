"""In-memory registry of declared resources."""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from infrastructure.policy.errors import NotFound, ValidationError
from infrastructure.policy.locking import ReadWriteLock
from infrastructure.policy.models import Resource, ResourceKind
from infrastructure.utils.logger import get_logger


logger = get_logger(__name__)


class ResourceCatalog:
    """Mapping from identifier to Resource with unique identifiers.

    Resources are never updated in place; ``replace`` swaps the whole
    definition, mirroring an immutable redeploy. The catalog owns the
    reader-writer lock shared by every component evaluating against it.
    """

    def __init__(self, lock: Optional[ReadWriteLock] = None) -> None:
        self.lock = lock or ReadWriteLock()
        self._resources: Dict[str, Resource] = {}

    def add(self, resource: Resource) -> Resource:
        with self.lock.write_locked():
            if resource.resource_id in self._resources:
                raise ValidationError(f"Duplicate resource identifier: {resource.resource_id}")
            self._resources[resource.resource_id] = resource
        logger.debug("Registered resource", extra={"resource": resource.resource_id})
        return resource

    def replace(self, resource: Resource) -> Resource:
        with self.lock.write_locked():
            if resource.resource_id not in self._resources:
                raise NotFound(f"Unknown resource: {resource.resource_id}")
            self._resources[resource.resource_id] = resource
        return resource

    def remove(self, resource_id: str) -> Resource:
        with self.lock.write_locked():
            try:
                return self._resources.pop(resource_id)
            except KeyError:
                raise NotFound(f"Unknown resource: {resource_id}") from None

    def get(self, resource_id: str) -> Resource:
        with self.lock.read_locked():
            resource = self._resources.get(resource_id)
        if resource is None:
            raise NotFound(f"Unknown resource: {resource_id}")
        return resource

    def list(self, kind: Optional[ResourceKind] = None) -> List[Resource]:
        with self.lock.read_locked():
            resources = list(self._resources.values())
        if kind is None:
            return resources
        return [r for r in resources if r.kind is kind]

    def validate(self) -> None:
        """Check cross-resource references (storage containers -> keys)."""
        with self.lock.read_locked():
            for resource in self._resources.values():
                if resource.kind is not ResourceKind.STORAGE_CONTAINER:
                    continue
                key_id = resource.encryption_key
                key = self._resources.get(key_id or "")
                if key is None:
                    raise ValidationError(
                        f"Storage container '{resource.resource_id}' references unknown key '{key_id}'"
                    )
                if key.kind is not ResourceKind.KEY:
                    raise ValidationError(
                        f"Storage container '{resource.resource_id}' references '{key_id}' which is not a key"
                    )

    def __contains__(self, resource_id: object) -> bool:
        with self.lock.read_locked():
            return resource_id in self._resources

    def __len__(self) -> int:
        with self.lock.read_locked():
            return len(self._resources)

    def __iter__(self) -> Iterator[Resource]:
        return iter(self.list())
