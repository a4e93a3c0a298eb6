"""
Data-access infrastructure - resilience patterns for spreadsheet reads.

Provides:
- LRUCache: Bounded cache with per-entry TTL
- CircuitBreaker: Stops calling a failing endpoint
- retry_with_backoff: Exponential backoff for transient failures
- RequestDeduplicator: Single-flight for concurrent misses
- ResilientFacade / NoOpFacade: The read path, selected at startup
"""

from minimonday.services.errors import (
    ServiceError,
    CircuitOpenError,
    VersionConflictError,
)
from minimonday.services.cache import LRUCache, CacheEntry, CacheStats
from minimonday.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from minimonday.services.retry import RetryOptions, is_retryable_error, retry_with_backoff
from minimonday.services.deduplicator import RequestDeduplicator
from minimonday.services.keys import (
    build_key,
    daily_logs_key,
    finance_key,
    projects_key,
    tasks_key,
    tasks_prefix,
    users_key,
)
from minimonday.services.occ import (
    VersionCheck,
    check_version,
    ensure_version,
    generate_client_mutation_id,
)
from minimonday.services.facade import (
    DataAccessContext,
    DataAccessFacade,
    NoOpFacade,
    ResilientFacade,
    build_facade,
)

__all__ = [
    # Errors
    "ServiceError",
    "CircuitOpenError",
    "VersionConflictError",
    # Cache
    "LRUCache",
    "CacheEntry",
    "CacheStats",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    # Retry
    "RetryOptions",
    "is_retryable_error",
    "retry_with_backoff",
    # Deduplicator
    "RequestDeduplicator",
    # Cache keys
    "build_key",
    "daily_logs_key",
    "finance_key",
    "projects_key",
    "tasks_key",
    "tasks_prefix",
    "users_key",
    # Optimistic concurrency
    "VersionCheck",
    "check_version",
    "ensure_version",
    "generate_client_mutation_id",
    # Facade
    "DataAccessContext",
    "DataAccessFacade",
    "NoOpFacade",
    "ResilientFacade",
    "build_facade",
]
