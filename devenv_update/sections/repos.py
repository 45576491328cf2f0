"""Container images and Git working copies. Never run in parallel."""

import logging
from pathlib import Path
from typing import List, Optional

from ..execution import CommandResult
from ..models import PackageRecord, PackageStatus, StepResult
from .base import Section, SectionContext, UpgradeItem

logger = logging.getLogger(__name__)


class DockerImagesSection(Section):
    """Pull newer versions of locally tagged images."""

    name = "Docker images"
    tool = "docker"
    parallel_safe = False

    def images(self, ctx: SectionContext, result: StepResult) -> List[str]:
        output = self.run_step(
            ctx,
            result,
            ["docker", "image", "ls", "--format", "{{.Repository}}:{{.Tag}}"],
            "docker_images_log",
            mutating=False,
        )
        images = []
        for line in output.lines:
            image = line.strip()
            if image and "<none>" not in image and image not in images:
                images.append(image)
        return images

    @staticmethod
    def outcome(item: UpgradeItem, output: CommandResult) -> Optional[UpgradeItem]:
        if any("Image is up to date" in line for line in output.lines):
            return None
        return item

    def run(self, ctx: SectionContext, result: StepResult):
        info = ctx.runner.run(["docker", "info", "--format", "{{.ServerVersion}}"])
        if not info.ok:
            result.skip("Docker daemon is not running")
            return
        images = self.images(ctx, result)
        result.counts.installed = len(images)
        if not images:
            result.notes.append("No tagged Docker images")
            return
        items = [UpgradeItem(image, image) for image in images]
        self.upgrade_each(ctx, result, items, lambda item: ["docker", "pull", item.id], outcome=self.outcome)


class GitRepositoriesSection(Section):
    """Fast-forward configured Git repositories."""

    name = "Git repositories"
    tool = "git"
    parallel_safe = False

    @staticmethod
    def discover(roots: List[Path]) -> List[Path]:
        """A root that is a repository, or its immediate child repositories."""
        repos: List[Path] = []
        for root in roots:
            if (root / ".git").exists():
                candidates = [root]
            elif root.is_dir():
                candidates = sorted(p for p in root.iterdir() if (p / ".git").exists())
            else:
                logger.warning(f"Git root {root} does not exist")
                continue
            repos.extend(p for p in candidates if p not in repos)
        return repos

    def head(self, ctx: SectionContext, repo: Path) -> Optional[str]:
        output = ctx.runner.run(["git", "-C", str(repo), "rev-parse", "--short", "HEAD"])
        return output.lines[0].strip() if output.ok and output.lines else None

    def run(self, ctx: SectionContext, result: StepResult):
        repos = self.discover(ctx.config.git_roots)
        result.counts.installed = len(repos)
        if not repos:
            result.skip("No Git repositories configured")
            return

        for index, repo in enumerate(repos, start=1):
            before = self.head(ctx, repo)
            output = self.run_step(
                ctx, result, ["git", "-C", str(repo), "pull", "--ff-only"], f"git_{index}_{repo.name}_log"
            )
            if ctx.dry_run:
                continue
            after = self.head(ctx, repo)
            item = UpgradeItem(str(repo), repo.name, before, after)
            if output.ok and before == after:
                result.add_package(PackageRecord(repo.name, before, after, PackageStatus.NO_CHANGE))
                continue
            self.record_outcome(ctx, result, item, output.ok, output.exit_code)
