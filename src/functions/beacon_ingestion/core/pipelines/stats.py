"""Graffiti statistics computed over the ingested blocks.

For the configured graffiti search term this step finds every validator
that proposed a matching block, checks validators seen for the first time,
and appends one ``StatsSnapshot`` per head slot.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..contracts import StatsSnapshot
from ..db.repository import LAST_STATS_FOR_SLOT, BeaconRepository
from .recheck import ValidatorRecheckDriver

logger = logging.getLogger(__name__)


class GraffitiStatsAggregator:
    """Computes and stores the stats snapshot for a head slot.

    Args:
        repository: Block/validator/meta persistence
        validator_checker: Driver used for never-checked proposers
        graffiti_search: Case-insensitive substring matched against graffiti
    """

    def __init__(
        self,
        repository: BeaconRepository,
        validator_checker: ValidatorRecheckDriver,
        *,
        graffiti_search: str = "dappnode",
    ) -> None:
        self.repository = repository
        self.validator_checker = validator_checker
        self.graffiti_search = graffiti_search

    async def already_computed(self, head_slot: int) -> bool:
        """True when a snapshot was already recorded for *head_slot*."""
        last = await self.repository.get_meta(LAST_STATS_FOR_SLOT)
        try:
            return last is not None and int(last) == head_slot
        except ValueError:
            logger.warning("Ignoring invalid %s value %r", LAST_STATS_FOR_SLOT, last)
            return False

    async def compute_stats(self, head_slot: int) -> Optional[StatsSnapshot]:
        """Compute, store and return the snapshot for *head_slot*.

        Returns:
            The stored snapshot, or ``None`` when stats for this head slot
            already exist or the validator checks were cancelled
        """
        if await self.already_computed(head_slot):
            logger.info(
                "We already computed final stats for headSlot=%s. Skipping final step.", head_slot
            )
            return None

        search = self.graffiti_search
        logger.info("Querying DB for graffiti containing the string %s...", search)
        proposers = await self.repository.find_graffiti_proposers(search)
        logger.info("Found %d unique proposers using %s graffiti.", len(proposers), search)

        if not proposers:
            snapshot = StatsSnapshot(
                slot=head_slot,
                unique_proposers=0,
                newly_active_ongoing=0,
                active_ongoing=0,
                unique_operators=0,
                graffiti_search=search,
            )
            await self._record(snapshot)
            return snapshot

        already_checked = await self.repository.existing_validator_ids(proposers)
        never_checked = proposers - already_checked
        logger.info(
            "We have %d total %s proposers, %d already checked, %d never checked.",
            len(proposers),
            search,
            len(already_checked),
            len(never_checked),
        )

        newly_active = 0
        if never_checked:
            logger.info("Concurrency-limited validator checks for new, never-checked validators...")
            check = await self.validator_checker.recheck_all(never_checked)
            if check.cancelled:
                logger.warning("Validator checks interrupted; not recording stats for slot %s", head_slot)
                return None
            newly_active = check.active_ongoing
        logger.info("Newly-checked validators that are active_ongoing: %d", newly_active)

        # TODO: track addresses per validator so only new proposers are queried
        # instead of rescanning every matching proposer on each run.
        addresses = await self.repository.distinct_withdrawal_addresses(proposers)
        active_total = await self.repository.count_active_validators()
        logger.info(
            "Unique operators (parsed ETH1 addresses) among %s proposers: %d",
            search,
            len(addresses),
        )

        snapshot = StatsSnapshot(
            slot=head_slot,
            unique_proposers=len(proposers),
            newly_active_ongoing=newly_active,
            active_ongoing=active_total,
            unique_operators=len(addresses),
            graffiti_search=search,
        )
        await self._record(snapshot)
        logger.info(
            "Final step done. Stats at slot=%s: %s_validator_proposers=%d, newly_active_ongoing=%d, "
            "unique_operators=%d, all active validators count=%d",
            head_slot,
            search,
            snapshot.unique_proposers,
            snapshot.newly_active_ongoing,
            snapshot.unique_operators,
            snapshot.active_ongoing,
        )
        return snapshot

    async def _record(self, snapshot: StatsSnapshot) -> None:
        # Guard is advanced only after the snapshot row exists
        await self.repository.insert_stats_snapshot(snapshot)
        await self.repository.set_meta(LAST_STATS_FOR_SLOT, str(snapshot.slot))
