"""
Cache invalidation engine.

Every mutation names the namespace it touched, the owner of the touched
row and its id. The engine turns that into the set of exact keys and
key patterns that may now be stale, scans the patterns, and deletes the
union in one batch. Failures are logged and reported, never raised: the
mutation has already committed and a failed pass only widens the
staleness window to the entry TTL.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from shared.logging import get_logger
from shared.errors import ConfigurationError, ExternalServiceError
from .keys import entity_key, listing_family_pattern, listing_pattern, stats_key
from .redis_cache import RedisCache


POST = "post"
SAVED_POST = "savedPost"
POST_STATS = "postStats"


@dataclass(frozen=True)
class NamespacePolicy:
    """What a mutation in ``name`` can make stale."""
    name: str
    # Owner-keyed aggregate namespace depending on this entity kind
    aggregate: Optional[str] = None
    # Namespaces whose listings embed this entity's content
    embedded_in: Tuple[str, ...] = ()


POLICIES: Dict[str, NamespacePolicy] = {
    POST: NamespacePolicy(POST, aggregate=POST_STATS, embedded_in=(SAVED_POST,)),
    SAVED_POST: NamespacePolicy(SAVED_POST),
}


@dataclass(frozen=True)
class InvalidationTarget:
    """A mutated row, or a row whose derived data a mutation changed."""
    namespace: str
    owner_id: Optional[Any] = None
    entity_id: Optional[Any] = None


@dataclass
class InvalidationPlan:
    patterns: List[str] = field(default_factory=list)
    keys: List[str] = field(default_factory=list)

    def add_pattern(self, pattern: str):
        if pattern not in self.patterns:
            self.patterns.append(pattern)

    def add_key(self, key: str):
        if key not in self.keys:
            self.keys.append(key)


@dataclass
class InvalidationReport:
    namespace: str
    patterns: List[str]
    deleted: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class InvalidationEngine:
    """Pattern-scan invalidation over the feed cache namespaces."""

    def __init__(self, cache: RedisCache, metrics=None, policies: Optional[Dict[str, NamespacePolicy]] = None):
        self.cache = cache
        self.metrics = metrics
        self.policies = policies or POLICIES
        self.logger = get_logger("feed.cache.invalidation")

    def _policy(self, namespace: str) -> NamespacePolicy:
        policy = self.policies.get(namespace)
        if policy is None:
            raise ConfigurationError(
                f"No invalidation policy for namespace '{namespace}'",
                details={"namespace": namespace}
            )
        return policy

    def plan(
        self,
        namespace: str,
        owner_id: Optional[Any] = None,
        entity_id: Optional[Any] = None,
        parent: Optional[InvalidationTarget] = None,
        cascade: bool = True,
        into: Optional[InvalidationPlan] = None,
    ) -> InvalidationPlan:
        """Compute the keys and patterns a mutation may have made stale.

        ``cascade`` also clears listings of other namespaces that embed this
        entity; creates skip it since a new row is not embedded anywhere yet.
        ``parent`` is planned recursively without cascade.
        """
        policy = self._policy(namespace)
        plan = into if into is not None else InvalidationPlan()

        plan.add_pattern(listing_pattern(namespace))

        if owner_id is not None:
            plan.add_pattern(listing_pattern(namespace, owner_id))
            if policy.aggregate:
                plan.add_key(stats_key(policy.aggregate, owner_id))

        if entity_id is not None:
            plan.add_key(entity_key(namespace, entity_id))

        if cascade:
            for dependent in policy.embedded_in:
                plan.add_pattern(listing_family_pattern(dependent))

        if parent is not None:
            self.plan(parent.namespace, parent.owner_id, parent.entity_id, cascade=False, into=plan)

        return plan

    async def invalidate(
        self,
        namespace: str,
        owner_id: Optional[Any] = None,
        entity_id: Optional[Any] = None,
        parent: Optional[InvalidationTarget] = None,
        cascade: bool = True,
    ) -> InvalidationReport:
        """Clear everything a mutation in ``namespace`` may have made stale."""
        plan = self.plan(namespace, owner_id, entity_id, parent=parent, cascade=cascade)
        report = InvalidationReport(namespace=namespace, patterns=plan.patterns)

        doomed = dict.fromkeys(plan.keys)
        for pattern in plan.patterns:
            try:
                matched = await self.cache.scan_keys_matching(pattern)
            except ExternalServiceError as e:
                report.errors.append(e.message)
                continue
            doomed.update(dict.fromkeys(matched))

        if doomed:
            try:
                report.deleted = await self.cache.delete(list(doomed))
            except ExternalServiceError as e:
                report.errors.append(e.message)

        self._record(report, owner_id=owner_id, entity_id=entity_id)
        return report

    def _record(self, report: InvalidationReport, **context):
        if report.ok:
            self.logger.info(
                "Cache invalidated",
                namespace=report.namespace,
                patterns=report.patterns,
                deleted=report.deleted,
                **context
            )
        else:
            self.logger.error(
                "Cache invalidation incomplete",
                namespace=report.namespace,
                patterns=report.patterns,
                deleted=report.deleted,
                errors=report.errors,
                **context
            )

        if self.metrics:
            self.metrics.increment_counter(
                "cache_invalidations_total",
                namespace=report.namespace,
                result="ok" if report.ok else "error"
            )
            if report.deleted:
                self.metrics.increment_counter(
                    "cache_invalidated_keys_total",
                    report.deleted,
                    namespace=report.namespace
                )
