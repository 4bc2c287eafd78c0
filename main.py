#!/usr/bin/env python3
"""
Bulletin Studio - Main Entry Point
Renders news bulletins into vertical videos and publishes them to Cloudflare Stream
"""

import sys
from pathlib import Path
from typing import List

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn
from rich.table import Table
from dotenv import load_dotenv

# Load local env for API keys
load_dotenv(dotenv_path=Path(__file__).parent / ".env.local")

from bulletin_studio.automation import JsonBulletinStore, lock_from_config
from bulletin_studio.automation.render_job import RenderBulletinJob, RetryPolicy
from bulletin_studio.automation.render_worker import RenderWorker
from bulletin_studio.publishing import Publisher
from bulletin_studio.storage import BumperCache, LocalAssetStore
from bulletin_studio.utils.config import Config
from bulletin_studio.utils.logger import setup_logging
from bulletin_studio.video_assembly import BulletinRenderer, FfmpegRunner

console = Console()


class BulletinStudio:
    """Main coordinator for bulletin rendering"""

    def __init__(self, config_path: str = "configs/config.yaml"):
        self.config = Config.load(config_path)
        self.logger = setup_logging(self.config)

        self.store = JsonBulletinStore.from_config(self.config)
        self.lock = lock_from_config(self.config)
        self.asset_store = LocalAssetStore.from_config(self.config)
        self.bumper_cache = BumperCache(self.config)
        self.publisher = Publisher(self.config)
        self.runner = FfmpegRunner(self.config)

    def _job(self, progress_hook=None) -> RenderBulletinJob:
        def factory(bulletin, on_progress):
            def report(percent, step):
                on_progress(percent, step)
                if progress_hook is not None:
                    progress_hook(percent, step)

            return BulletinRenderer(
                bulletin,
                self.config,
                runner=self.runner,
                asset_store=self.asset_store,
                bumper_cache=self.bumper_cache,
                publisher=self.publisher,
                on_progress=report,
            )

        return RenderBulletinJob(self.config, self.store, self.lock, renderer_factory=factory)

    def render(self, bulletin_id: str) -> None:
        """Render one bulletin in the foreground, with retries"""
        console.print(f"[blue]🎬[/blue] Rendering bulletin {bulletin_id}...")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=console,
            refresh_per_second=4,
        ) as progress:
            task = progress.add_task("[cyan]Starting render", total=100)

            def progress_hook(percent, step):
                progress.update(task, completed=percent, description=f"[cyan]{step}")

            job = self._job(progress_hook)
            result = RetryPolicy.from_config(self.config).run(job.perform, bulletin_id)

        if result is None:
            console.print(f"[yellow]⚠[/yellow] Bulletin {bulletin_id} is already being rendered, skipped")
            return

        console.print(f"[green]✓[/green] Rendered {len(result.segments)} segments "
                      f"({result.total_duration:.1f}s) in {result.render_time_seconds:.1f}s")
        console.print(f"[green]✓[/green] Output: {result.output_path}")
        if result.video_id:
            console.print(f"[green]✓[/green] Cloudflare Stream id: {result.video_id}")
        else:
            console.print("[yellow]⚠[/yellow] Not published (Cloudflare Stream not configured)")

    def enqueue(self, bulletin_ids: List[str]) -> None:
        """Render several bulletins on the background worker and wait for them"""
        worker = RenderWorker(self.config, self.store, self._job())
        futures = {}
        try:
            for bulletin_id in bulletin_ids:
                try:
                    futures[bulletin_id] = worker.enqueue(bulletin_id)
                    console.print(f"[blue]📥[/blue] Queued bulletin {bulletin_id}")
                except (ValueError, KeyError) as e:
                    console.print(f"[red]❌[/red] {e}")

            for bulletin_id, future in futures.items():
                error = future.exception()
                if error is None:
                    console.print(f"[green]✓[/green] Bulletin {bulletin_id} finished")
                else:
                    console.print(f"[red]❌[/red] Bulletin {bulletin_id} failed: {error}")
        finally:
            worker.shutdown()

    def show_status(self, bulletin_id: str) -> None:
        bulletin = self.store.get(bulletin_id)

        table = Table(title=f"Bulletin {bulletin.id}")
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Status", bulletin.status.value)
        table.add_row("Stories", f"{len(bulletin.done_stories())}/{len(bulletin.stories)} done")
        table.add_row("Render status", bulletin.render_status.value if bulletin.render_status else "-")
        table.add_row("Progress", f"{bulletin.render_progress}%")
        table.add_row("Step", bulletin.render_step or "-")
        table.add_row("Video id", bulletin.rendered_video_id or "-")
        if bulletin.render_error:
            table.add_row("Error", f"[red]{bulletin.render_error}[/red]")
        console.print(table)

        if bulletin.render_log:
            console.print("[dim]Last log lines:[/dim]")
            for line in bulletin.render_log.splitlines()[-15:]:
                console.print(f"[dim]{line}[/dim]", markup=False)

    def check(self) -> bool:
        """Check tools, assets and publishing configuration"""
        ok = True
        for name, available in self.runner.check_available().items():
            if available:
                console.print(f"[green]✓[/green] {name} available")
            else:
                console.print(f"[red]❌[/red] {name} not runnable")
                ok = False

        assets = self.config.assets
        for label, path in [("Anchor loop", assets.anchor_video), ("Studio background", assets.studio_background),
                            ("Music bed", assets.music_bed), ("Local bumper", assets.local_bumper)]:
            if path and Path(path).exists():
                console.print(f"[green]✓[/green] {label}: {path}")
            else:
                console.print(f"[yellow]⚠[/yellow] {label} missing ({path}), that stage degrades")

        if self.publisher.client.configured():
            console.print("[green]✓[/green] Cloudflare Stream configured")
        else:
            console.print("[yellow]⚠[/yellow] Cloudflare Stream not configured, uploads are skipped")

        console.print(f"[blue]ℹ[/blue] Locks: {self.config.jobs.lock_backend}, "
                      f"workers: {self.config.jobs.max_workers}, "
                      f"attempts: {self.config.jobs.max_attempts}")
        return ok


def main():
    """Main entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="Bulletin Studio render pipeline")
    parser.add_argument("--config", type=str, default="configs/config.yaml",
                        help="Path to configuration file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    render_parser = subparsers.add_parser("render", help="Render one bulletin now")
    render_parser.add_argument("bulletin_id")

    enqueue_parser = subparsers.add_parser("enqueue", help="Render bulletins on the background worker")
    enqueue_parser.add_argument("bulletin_ids", nargs="+")

    status_parser = subparsers.add_parser("status", help="Show a bulletin's render state")
    status_parser.add_argument("bulletin_id")

    subparsers.add_parser("check", help="Check ffmpeg, assets and publishing setup")

    args = parser.parse_args()

    try:
        studio = BulletinStudio(args.config)

        if args.command == "render":
            studio.render(args.bulletin_id)
        elif args.command == "enqueue":
            studio.enqueue(args.bulletin_ids)
        elif args.command == "status":
            studio.show_status(args.bulletin_id)
        elif args.command == "check":
            if not studio.check():
                sys.exit(1)

    except KeyboardInterrupt:
        console.print("\n[yellow]⏹️[/yellow] Stopped by user")
    except Exception as e:
        console.print(f"[red]💥[/red] Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
