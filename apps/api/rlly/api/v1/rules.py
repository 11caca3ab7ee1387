"""Email rule management endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rlly.core.deps import Registry, get_db
from rlly.models.email_event import EventType
from rlly.schemas.rules import (
    EmailRuleCreate,
    EmailRuleResponse,
    EmailRuleUpdate,
    RuleMetricResponse,
)
from rlly.services.email_engine import EmailEngineService

router = APIRouter()


@router.get("", response_model=list[EmailRuleResponse])
async def list_rules(
    registry: Registry,
    trigger: EventType | None = Query(None),
    active: bool | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> list[EmailRuleResponse]:
    """List rules, optionally filtered by trigger and active flag."""
    service = EmailEngineService(db, registry)
    rules = await service.list_rules(trigger=trigger, active=active)
    return [EmailRuleResponse.model_validate(rule) for rule in rules]


@router.post("", response_model=EmailRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    data: EmailRuleCreate,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> EmailRuleResponse:
    """Create a rule for an active template."""
    service = EmailEngineService(db, registry)
    rule = await service.create_rule(data)
    await db.commit()
    return EmailRuleResponse.model_validate(rule)


@router.get("/{rule_id}", response_model=EmailRuleResponse)
async def get_rule(
    rule_id: UUID,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> EmailRuleResponse:
    service = EmailEngineService(db, registry)
    return EmailRuleResponse.model_validate(await service.get_rule(rule_id))


@router.patch("/{rule_id}", response_model=EmailRuleResponse)
async def update_rule(
    rule_id: UUID,
    data: EmailRuleUpdate,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> EmailRuleResponse:
    """Partially update a rule."""
    service = EmailEngineService(db, registry)
    rule = await service.update_rule(rule_id, data)
    await db.commit()
    await db.refresh(rule)
    return EmailRuleResponse.model_validate(rule)


@router.get("/{rule_id}/metrics", response_model=RuleMetricResponse)
async def get_rule_metrics(
    rule_id: UUID,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> RuleMetricResponse:
    """Trigger and send counters for a rule."""
    service = EmailEngineService(db, registry)
    return RuleMetricResponse.model_validate(await service.get_rule_metrics(rule_id))
