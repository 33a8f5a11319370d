"""
Feature access service composition root.
"""

import asyncio
from typing import Dict, Optional

from prometheus_client import CollectorRegistry

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger
from shared.metrics import get_metrics_collector

from .cache.redis_cache import CachedPolicyRepository
from .context.assembler import ContextAssembler
from .context.collaborators import BillingLookup, IdentityProvider, StructlogAccessLogger
from .guards import FeatureGuard
from .persistence.postgres import PostgresPolicyRepository
from .rules.engine import AccessEvaluator
from .rules.models import ActorContext, EntitlementContext, FaultKind, Policy, Severity, Verdict
from .rules.policies import DEFAULT_POLICIES, resolve_policies


class FeaturesService:
    """Wires configuration, policy storage, logging and metrics together."""
    
    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        registry: Optional[CollectorRegistry] = None
    ):
        self.config = config or get_config("features")
        configure_logging("features", self.config.log_level, json_logs=self.config.env != "local")
        self.logger = get_logger("features.service")
        self.metrics = get_metrics_collector("features", registry)
        
        self.access_logger = StructlogAccessLogger(self.metrics)
        self.evaluator = AccessEvaluator()
        self.guard = FeatureGuard(self.access_logger, self.evaluator)
        
        self.persistence = PostgresPolicyRepository(self.config.postgres_dsn)
        self.cache: Optional[CachedPolicyRepository] = None
        if self.config.enable_policy_cache:
            self.cache = CachedPolicyRepository(
                self.persistence,
                self.config.redis_url,
                ttl_seconds=self.config.policy_cache_ttl_seconds
            )
    
    @property
    def policy_repository(self):
        return self.cache or self.persistence
    
    async def start(self):
        """Start storage backends.

        Startup never fails: if the store is unavailable, assemblies use the
        default policy table.
        """
        try:
            await self.persistence.start()
        except Exception as e:
            self.logger.error("Policy store unavailable at startup", error=str(e))
            self.metrics.record_error("policy_store_unavailable")
        
        if self.cache:
            try:
                await self.cache.start()
            except Exception as e:
                self.logger.warning("Policy cache unavailable, reading store directly", error=str(e))
                self.metrics.record_error("policy_cache_unavailable")
                self.cache = None
        
        self.logger.info("Features service started", env=self.config.env)
    
    def start_metrics_server(self):
        """Expose Prometheus metrics on the configured port."""
        self.metrics.start_metrics_server(self.config.metrics_port)
        self.logger.info("Metrics server started", port=self.config.metrics_port)
    
    async def stop(self):
        """Stop storage backends."""
        if self.cache:
            await self.cache.stop()
        await self.persistence.stop()
        self.logger.info("Features service stopped")
    
    def assembler(
        self,
        identity_provider: IdentityProvider,
        billing_lookup: Optional[BillingLookup] = None
    ) -> ContextAssembler:
        """Assembler for one request's identity."""
        return ContextAssembler(
            policy_repository=self.policy_repository,
            identity_provider=identity_provider,
            access_logger=self.access_logger,
            billing_lookup=billing_lookup,
            policy_timeout=self.config.policy_timeout_seconds,
            identity_timeout=self.config.identity_timeout_seconds,
            billing_timeout=self.config.billing_timeout_seconds,
            evaluator=self.evaluator,
            metrics=self.metrics
        )
    
    async def assemble(
        self,
        identity_provider: IdentityProvider,
        billing_lookup: Optional[BillingLookup] = None
    ) -> EntitlementContext:
        return await self.assembler(identity_provider, billing_lookup).assemble()
    
    async def load_policies(self) -> Dict[str, Policy]:
        """Effective policies, or the default table if the store fails or stalls."""
        try:
            stored = await asyncio.wait_for(
                self.policy_repository.load_policies(),
                timeout=self.config.policy_timeout_seconds
            )
            return resolve_policies(stored)
        except Exception as e:
            self.access_logger.report(FaultKind.POLICY_LOAD_FAILED, Severity.ERROR, e)
            return dict(DEFAULT_POLICIES)
    
    async def check(self, feature_key: str, actor: ActorContext) -> Verdict:
        """Verdict for one feature against current policies."""
        return self.guard.check(feature_key, actor, await self.load_policies())
    
    async def require(self, feature_key: str, actor: ActorContext) -> ActorContext:
        """Raise ``FeatureAccessDenied`` unless ``actor`` may use the feature."""
        return self.guard.require(feature_key, actor, await self.load_policies())
