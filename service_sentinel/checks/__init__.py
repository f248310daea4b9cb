"""Built-in checks."""

from service_sentinel.checks.architecture import (
    DeferredImportCheck,
    FatComponentCheck,
    FieldInjectionCheck,
    ManualInstantiationCheck,
    MutableSingletonStateCheck,
)
from service_sentinel.checks.base import AnyCheck, CheckRegistry
from service_sentinel.checks.build import (
    ExposedCrudEndpointsCheck,
    MissingBuildSystemCheck,
    OutdatedFrameworkCheck,
)
from service_sentinel.checks.configuration import (
    DebugModeCheck,
    ModificationTrackingCheck,
    PoolImbalanceCheck,
)
from service_sentinel.checks.maintainability import LoggingInLoopCheck, MissingPaginationCheck
from service_sentinel.checks.persistence import (
    BlockingCallInTransactionCheck,
    CacheWithoutTtlCheck,
    CartesianProductRiskCheck,
    EagerLoadingCheck,
    NPlusOneQueryCheck,
    TransactionTimeoutCheck,
)
from service_sentinel.checks.resilience import ManualThreadCheck, MissingHttpTimeoutCheck
from service_sentinel.checks.rest import (
    ApiVersioningCheck,
    PluralResourceCheck,
    ResponseModelCheck,
    UrlNamingCheck,
)
from service_sentinel.checks.security import (
    HardcodedSecretCheck,
    PermissiveCorsCheck,
    PropertySecretCheck,
)

BUILTIN_CHECKS: tuple[type[AnyCheck], ...] = (
    FieldInjectionCheck,
    ManualInstantiationCheck,
    FatComponentCheck,
    DeferredImportCheck,
    MutableSingletonStateCheck,
    HardcodedSecretCheck,
    PropertySecretCheck,
    PermissiveCorsCheck,
    EagerLoadingCheck,
    NPlusOneQueryCheck,
    BlockingCallInTransactionCheck,
    CacheWithoutTtlCheck,
    CartesianProductRiskCheck,
    TransactionTimeoutCheck,
    MissingHttpTimeoutCheck,
    ManualThreadCheck,
    LoggingInLoopCheck,
    MissingPaginationCheck,
    UrlNamingCheck,
    ApiVersioningCheck,
    PluralResourceCheck,
    ResponseModelCheck,
    DebugModeCheck,
    PoolImbalanceCheck,
    ModificationTrackingCheck,
    MissingBuildSystemCheck,
    OutdatedFrameworkCheck,
    ExposedCrudEndpointsCheck,
)


def default_registry() -> CheckRegistry:
    """Return a registry holding one instance of every built-in check."""
    return CheckRegistry(check_cls() for check_cls in BUILTIN_CHECKS)
