"""The winget section: bulk upgrade, explicit targeting and blocker retries."""

import logging
from typing import Dict, List, Set

from .. import winget
from ..cache import cached_command
from ..execution import CommandResult
from ..models import PackageRecord, PackageStatus, StepResult, UpgradeCandidate
from .base import Section, SectionContext, UpgradeItem

logger = logging.getLogger(__name__)


class WingetSection(Section):
    """Upgrade winget packages in a strict order.

    source refresh -> listing -> bulk ``--all`` (or per-id in delta mode) ->
    explicit-targeting ids -> re-listing -> one retry for retry-listed ids
    still pending (running-app blockers included) -> final classification
    against the last listing.
    """

    name = "Winget"
    tool = "winget"
    delta_source = "Winget"

    CACHE_PREFIX = "winget-"

    def list_upgrades(self, ctx: SectionContext, result: StepResult, force: bool, artifact: str) -> CommandResult:
        listing = cached_command(
            ctx.cache if ctx.config.cache_enabled else None,
            f"{self.CACHE_PREFIX}upgrade",
            ctx.config.cache_ttl,
            ctx.runner,
            winget.list_upgrades_command(),
            force=force,
        )
        ctx.artifact(result, artifact, listing.lines)
        return listing

    def invalidate_cache(self, ctx: SectionContext):
        if ctx.cache is not None:
            ctx.cache.invalidate_prefix(self.CACHE_PREFIX)

    def run(self, ctx: SectionContext, result: StepResult):
        policy = ctx.policy(self.name)

        refresh = self.run_step(ctx, result, winget.source_update_command(), "winget_source_log")
        if not refresh.ok:
            result.notes.append(f"winget source update exited with {refresh.exit_code}")
        self.invalidate_cache(ctx)

        listing = self.list_upgrades(ctx, result, force=False, artifact="winget_upgrade_list_log")
        candidates = winget.parse_upgrade_list(listing.lines)
        result.counts.available = len(candidates)
        if not candidates:
            result.notes.append("No winget upgrades available")
            return

        targets = ctx.targets_for(self.delta_source)
        outputs: List[List[str]] = [listing.lines]
        exits: Dict[str, int] = {}
        bulk_exit = 0

        if targets is None:
            considered = candidates
            bulk = self.run_step(ctx, result, winget.upgrade_all_command(), "winget_all_log")
            outputs.append(bulk.lines)
            bulk_exit = bulk.exit_code
            queue = winget.get_explicit_target_ids(listing.lines)
            queue += [i for i in winget.get_explicit_target_ids(bulk.lines) if i not in queue]
        else:
            wanted = {t.lower() for t in targets}
            considered = [c for c in candidates if c.id.lower() in wanted]
            queue = [c.id for c in considered]
            result.notes.append(f"Delta mode: {len(considered)} of {len(candidates)} upgrades targeted")

        for package_id in queue:
            output = self.run_step(ctx, result, winget.upgrade_id_command(package_id), f"winget_{package_id}_log")
            outputs.append(output.lines)
            if not output.ok:
                exits.setdefault(package_id.lower(), output.exit_code)
        self.invalidate_cache(ctx)

        if ctx.dry_run:
            for c in considered:
                result.add_package(PackageRecord(c.name, c.version, c.available, PackageStatus.NO_CHANGE, "dry-run"))
            return

        blockers = {b.id.lower(): b for lines in outputs for b in winget.get_running_blockers(lines)}
        pending = self.pending_ids(ctx, result, exits, blockers, "winget_upgrade_recheck_log")

        retried: Set[str] = set()
        for c in considered:
            key = c.id.lower()
            if key in pending and policy.should_retry(c.id):
                reason = "application running" if key in blockers else "first attempt"
                result.add_package(PackageRecord(c.name, c.version, c.available, PackageStatus.FAILED, reason))
                output = self.run_step(ctx, result, winget.upgrade_id_command(c.id), f"winget_retry_{c.id}_log")
                if not output.ok:
                    exits.setdefault(key, output.exit_code)
                retried.add(key)
        if retried:
            self.invalidate_cache(ctx)
            pending = self.pending_ids(ctx, result, exits, {}, "winget_upgrade_final_log")

        self.classify(ctx, result, considered, pending, exits, blockers, retried, bulk_exit)

    def pending_ids(self, ctx, result, exits, blockers, artifact) -> Set[str]:
        """Ids still upgradable after the upgrade pass."""
        relist = self.list_upgrades(ctx, result, force=True, artifact=artifact)
        if relist.ok:
            return {c.id.lower() for c in winget.parse_upgrade_list(relist.lines)}
        result.notes.append(f"winget re-listing exited with {relist.exit_code}; using exit codes instead")
        return set(exits) | set(blockers)

    def classify(
        self,
        ctx: SectionContext,
        result: StepResult,
        considered: List[UpgradeCandidate],
        pending: Set[str],
        exits: Dict[str, int],
        blockers: Dict,
        retried: Set[str],
        bulk_exit: int,
    ):
        policy = ctx.policy(self.name)
        failing = [c for c in considered if c.id.lower() in pending and not policy.is_ignored(c.id)]
        if failing and bulk_exit:
            result.record_exit(bulk_exit)

        for c in considered:
            key = c.id.lower()
            item = UpgradeItem(c.id, c.name, c.version, c.available)
            note = "retry" if key in retried else None
            reason = None
            if key in blockers:
                reason = "application is currently running"
                result.notes.append(f"{c.name} [{c.id}] was blocked by a running application")
            self.record_outcome(ctx, result, item, key not in pending, exits.get(key, 0), note, reason)
