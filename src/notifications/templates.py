"""French copy for smart notifications.

Builders return unsaved Notification rows; the caller adds them to its session.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from src.eligibility.targets import target_name, target_url
from src.models.enums import NotificationPriority, NotificationType, TargetType
from src.models.notification import Notification

CELEBRATION_DISPLAY_SECONDS = 300
PROGRESS_DISPLAY_SECONDS = 240
PROGRESS_REPEAT_HOURS = 24
MOTIVATION_DISPLAY_SECONDS = 240
MOTIVATION_REPEAT_HOURS = 48


def _kind(target_type: TargetType) -> str:
    return "compte" if target_type == TargetType.ACCOUNT else "service"


def percent(progress: Decimal) -> int:
    """Progress as a whole percentage, rounded half-up."""
    return int(progress.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_celebration(customer_id: int, target_type: TargetType, target_code: str) -> Notification:
    name = target_name(target_type, target_code)
    return Notification(
        customer_id=customer_id,
        notification_type=NotificationType.CELEBRATION.value,
        priority=NotificationPriority.HIGH.value,
        title="Félicitations!",
        message=(
            f"Votre {_kind(target_type)} {name} est maintenant débloqué! "
            "Vous remplissez toutes les conditions d'éligibilité."
        ),
        action_label="Découvrir",
        action_url=target_url(target_type, target_code),
        icon="trophy",
        target_type=target_type.value,
        target_code=target_code,
        display_duration_seconds=CELEBRATION_DISPLAY_SECONDS,
        is_repeatable=False,
        extra={"event": "eligibility_gained"},
    )


def build_progress(
    customer_id: int,
    target_type: TargetType,
    target_code: str,
    progress: Decimal,
    estimated_days: int | None,
    milestone: int,
) -> Notification:
    name = target_name(target_type, target_code)
    tail = f"Plus que {estimated_days} jours!" if estimated_days else "Continuez vos efforts!"
    return Notification(
        customer_id=customer_id,
        notification_type=NotificationType.PROGRESS.value,
        priority=NotificationPriority.MEDIUM.value,
        title="Progression en cours",
        message=f"Vous êtes à {percent(progress)}% pour débloquer {name}. {tail}",
        action_label="Voir les conditions",
        action_url=target_url(target_type, target_code),
        icon="trending-up",
        target_type=target_type.value,
        target_code=target_code,
        display_duration_seconds=PROGRESS_DISPLAY_SECONDS,
        is_repeatable=True,
        repeat_interval_hours=PROGRESS_REPEAT_HOURS,
        extra={"milestone": milestone, "estimatedDays": estimated_days},
    )


def build_motivation(
    customer_id: int,
    target_type: TargetType | None,
    target_code: str | None,
    progress: Decimal | None,
    now: datetime,
) -> Notification:
    """Nudge for an inactive customer, pointing at their closest target when known."""
    if target_type is not None and target_code is not None and progress is not None:
        message = (
            f"Vous êtes à {percent(progress)}% pour débloquer "
            f"{target_name(target_type, target_code)}. Un petit dépôt aujourd'hui vous rapproche du but!"
        )
    else:
        message = "Un petit dépôt aujourd'hui vous rapproche de vos objectifs!"
    return Notification(
        customer_id=customer_id,
        notification_type=NotificationType.MOTIVATION.value,
        priority=NotificationPriority.LOW.value,
        title="On vous attend!",
        message=message,
        action_label="Faire un dépôt",
        action_url="/dashboard/deposit",
        icon="zap",
        target_type=target_type.value if target_type is not None else None,
        target_code=target_code,
        display_duration_seconds=MOTIVATION_DISPLAY_SECONDS,
        is_repeatable=True,
        repeat_interval_hours=MOTIVATION_REPEAT_HOURS,
        expires_at=now + timedelta(hours=MOTIVATION_REPEAT_HOURS),
    )
