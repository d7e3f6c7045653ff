"""
Service for trial allowances.

Same discipline as the quota enforcer, against a counter that never resets.
"""

from typing import Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.retry import run_with_store_retry
from common.db.scoped import transaction
from packages.billing.models.domain.usage import TrialDecision
from packages.billing.repositories.trial_repository import TrialAllowanceRepository

logger = get_logger(__name__)


class TrialService:
    """Service for non-resetting trial allowances of unpaid accounts."""

    def __init__(self):
        self.trial_repo = TrialAllowanceRepository()

    @staticmethod
    def get_cap(feature_key: str) -> int:
        return settings.trial_caps.get(feature_key, settings.trial_default_cap)

    async def _use(self, account_id: int, feature_key: str) -> Optional[int]:
        async with transaction():
            used = await self.trial_repo.try_use(account_id, feature_key)
            if used is not None:
                return used

            if await self.trial_repo.get_allowance(account_id, feature_key) is None:
                # The cap is fixed when the allowance is first created
                await self.trial_repo.ensure_allowance(
                    account_id, feature_key, self.get_cap(feature_key)
                )
                return await self.trial_repo.try_use(account_id, feature_key)

            return None

    @trace_span
    async def check_trial(self, account_id: int, feature_key: str) -> TrialDecision:
        """
        Consume one trial use of feature_key.

        Once used reaches cap every later call is denied; there is no reset.
        """
        used = await run_with_store_retry(
            lambda: self._use(account_id, feature_key), "trial.check_trial"
        )
        allowance = await self.trial_repo.get_allowance(account_id, feature_key)
        cap = allowance.cap if allowance else self.get_cap(feature_key)

        if used is None:
            logger.info(
                f"Trial for {feature_key} exhausted for account {account_id}",
                extra={"account_id": account_id, "feature_key": feature_key},
            )
            return TrialDecision(
                allowed=False,
                feature_key=feature_key,
                used=allowance.used if allowance else cap,
                cap=cap,
            )

        return TrialDecision(allowed=True, feature_key=feature_key, used=used, cap=cap)
