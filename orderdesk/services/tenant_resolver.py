"""Map a channel-side receiving id (number, bot, page) to a tenant."""

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy.orm import Session

from orderdesk.logging_config import get_logger
from orderdesk.models import BotIntegration, Branch, Business
from orderdesk.services.result import Result

logger = get_logger("tenant_resolver")


@dataclass(frozen=True)
class ChannelIntegration:
    """Channel credentials as stored for the reply owner. Tokens stay encrypted."""

    platform: str
    external_id: str
    enabled: bool
    provider: Optional[str] = None
    access_token_encrypted: Optional[str] = None
    config: dict[str, Any] = field(default_factory=dict)
    source: str = "registry"  # registry, legacy


@dataclass(frozen=True)
class TenantContext:
    business: Business
    branch: Optional[Branch]
    owner_type: str  # business, branch
    integration: Optional[ChannelIntegration]

    @property
    def business_id(self) -> UUID:
        return self.business.id

    @property
    def owner(self) -> Union[Business, Branch]:
        if self.owner_type == "branch" and self.branch is not None:
            return self.branch
        return self.business


@dataclass(frozen=True)
class Resolution:
    """Tagged result of one strategy: which path matched and what it produced."""

    strategy: str
    context: TenantContext


def _single_branch(db: Session, business_id: UUID) -> Optional[Branch]:
    branches = db.query(Branch).filter(Branch.business_id == business_id).limit(2).all()
    return branches[0] if len(branches) == 1 else None


def _context_for_branch(
    db: Session, branch: Branch, integration: Optional[ChannelIntegration]
) -> Optional[TenantContext]:
    if not branch.business_id:
        logger.warning(f"Branch {branch.id} has no business_id")
        return None
    business = db.query(Business).filter(Business.id == branch.business_id).first()
    if business is None:
        logger.warning(f"Parent business {branch.business_id} of branch {branch.id} not found")
        return None
    return TenantContext(business=business, branch=branch, owner_type="branch", integration=integration)


def _context_for_business(
    db: Session, business: Business, integration: Optional[ChannelIntegration]
) -> TenantContext:
    return TenantContext(
        business=business,
        branch=_single_branch(db, business.id),
        owner_type="business",
        integration=integration,
    )


class IntegrationRegistryStrategy:
    name = "registry"

    def lookup(self, db: Session, platform: str, external_id: str) -> Optional[Resolution]:
        row = (
            db.query(BotIntegration)
            .filter(BotIntegration.platform == platform, BotIntegration.external_id == external_id)
            .first()
        )
        if row is None:
            return None

        integration = ChannelIntegration(
            platform=row.platform,
            external_id=row.external_id,
            enabled=bool(row.enabled),
            provider=row.provider,
            access_token_encrypted=row.access_token_encrypted,
            config=dict(row.config or {}),
        )

        if row.owner_type == "branch":
            branch = db.query(Branch).filter(Branch.id == row.owner_id).first()
            if branch is None:
                logger.warning(f"Integration {row.id} owner branch {row.owner_id} not found")
                return None
            context = _context_for_branch(db, branch, integration)
        else:
            business = db.query(Business).filter(Business.id == row.owner_id).first()
            if business is None:
                logger.warning(f"Integration {row.id} owner business {row.owner_id} not found")
                return None
            context = _context_for_business(db, business, integration)

        return Resolution(self.name, context) if context else None


def _legacy_integration(platform: str, external_id: str, token: Optional[str]) -> ChannelIntegration:
    # Pre-registry tenants configured the channel directly on the owner row.
    return ChannelIntegration(
        platform=platform,
        external_id=external_id,
        enabled=bool(token),
        access_token_encrypted=token,
        source="legacy",
    )


class LegacyBranchStrategy:
    name = "legacy_branch"

    def lookup(self, db: Session, platform: str, external_id: str) -> Optional[Resolution]:
        if platform != "whatsapp":
            return None
        branch = db.query(Branch).filter(Branch.whatsapp_phone_number_id == external_id).first()
        if branch is None:
            return None
        integration = _legacy_integration(platform, external_id, branch.whatsapp_access_token_encrypted)
        context = _context_for_branch(db, branch, integration)
        return Resolution(self.name, context) if context else None


class LegacyBusinessStrategy:
    name = "legacy_business"

    def lookup(self, db: Session, platform: str, external_id: str) -> Optional[Resolution]:
        if platform != "whatsapp":
            return None
        business = db.query(Business).filter(Business.whatsapp_phone_number_id == external_id).first()
        if business is None:
            return None
        integration = _legacy_integration(platform, external_id, business.whatsapp_access_token_encrypted)
        return Resolution(self.name, _context_for_business(db, business, integration))


DEFAULT_STRATEGIES = (IntegrationRegistryStrategy(), LegacyBranchStrategy(), LegacyBusinessStrategy())


class TenantResolver:
    def __init__(self, strategies: Optional[Sequence] = None):
        self.strategies = list(strategies) if strategies is not None else list(DEFAULT_STRATEGIES)

    def resolve(self, db: Session, platform: str, business_channel_id: str) -> Result[TenantContext]:
        """Try each strategy in order; the first match wins."""
        if not business_channel_id:
            return Result.not_found("Tenant")

        for strategy in self.strategies:
            resolution = strategy.lookup(db, platform, business_channel_id)
            if resolution is None:
                continue
            context = resolution.context
            if context.branch is not None and context.branch.business_id != context.business.id:
                logger.warning(
                    "Resolved branch does not belong to resolved business",
                    extra={
                        "context": {
                            "strategy": resolution.strategy,
                            "branch_id": str(context.branch.id),
                            "business_id": str(context.business.id),
                        }
                    },
                )
                continue
            logger.debug(f"Tenant resolved via {resolution.strategy}: business={context.business.id}")
            return Result.success(context)

        return Result.not_found("Tenant")
