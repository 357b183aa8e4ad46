import argparse
import logging
import threading
from pathlib import Path
from typing import List, Optional

from seachart_tiles.exceptions.tile_downloader_exceptions import ValidationError
from seachart_tiles.interfaces.tile_server import INotifier
from seachart_tiles.models.download_job import DownloadJob, DownloadState
from seachart_tiles.models.geo import CoordinateRegion
from seachart_tiles.models.tile_server import DownloadConfig
from seachart_tiles.services.archive_download_service import ArchiveDownloadService
from seachart_tiles.services.region_catalog import RegionCatalog
from seachart_tiles.services.tile_download_service import TileDownloadService
from seachart_tiles.utils.metadata_manager import CustomTileSetManifest, MetadataManager


logger = logging.getLogger(__name__)


class TileDownloadManager:
    """Builds and owns the tile services for one storage root"""

    def __init__(self, config: Optional[DownloadConfig] = None,
                 notifier: Optional[INotifier] = None):
        self.config = config or DownloadConfig()
        storage_root = Path(self.config.storage_root)

        self.catalog = RegionCatalog(str(storage_root))
        self.metadata = MetadataManager(str(storage_root / "regions"))
        self.archive_service = ArchiveDownloadService(
            self.catalog,
            base_url=self.config.archive_base_url,
            notifier=notifier,
            timeout=max(self.config.timeout, 60),
            retry_attempts=self.config.retry_attempts,
            regions=self.config.regions,
            user_agent=self.config.user_agent,
        )
        self.tile_service = TileDownloadService(
            str(storage_root),
            self.config.tile_server(),
            metadata=self.metadata,
            max_workers=self.config.max_concurrent,
            retry_attempts=self.config.retry_attempts,
            timeout=self.config.timeout,
        )

    def startup(self) -> None:
        """Load archives and custom tile sets from disk"""
        self.catalog.reload()
        self.tile_service.load_all()

    def shutdown(self) -> None:
        self.archive_service.shutdown()
        self.catalog.close()

    # Archive operations

    def download_archive(self, region_id: str, wait: bool = True,
                         on_progress=None) -> Optional[DownloadJob]:
        """Start an archive download; optionally block until it ends"""
        future = self.archive_service.start(region_id, progress_callback=on_progress)
        if future is None:
            return None
        if not wait:
            return self.archive_service.snapshot()
        try:
            return future.result()
        except KeyboardInterrupt:
            self.archive_service.cancel()
            return future.result()

    def fetch_tile_set(self, name: str, region: CoordinateRegion, min_zoom: int, max_zoom: int,
                       cancel_event: Optional[threading.Event] = None,
                       on_progress=None) -> CustomTileSetManifest:
        return self.tile_service.run(name, region, min_zoom, max_zoom,
                                     cancel_event=cancel_event, progress_callback=on_progress)

    # Listing

    def list_regions(self) -> None:
        """List downloadable regions"""
        print("Available regions:")
        for region_id in self.archive_service.available_regions():
            status = "downloaded" if self.catalog.is_downloaded(region_id) else "not downloaded"
            print(f"  {region_id}: {status}")

    def list_archives(self) -> None:
        """List archives on disk with bounds and zoom levels"""
        records = self.catalog.records()
        if not records:
            print("No archives downloaded.")
            return
        print("Downloaded archives:")
        for record in records:
            bounds = record.bounds.to_list() if record.bounds else None
            bounds_str = (f"[{bounds[0]:.2f}, {bounds[1]:.2f}, {bounds[2]:.2f}, {bounds[3]:.2f}]"
                          if bounds else "No bounds")
            zooms = sorted(record.zoom_levels_present)
            zoom_str = f"{zooms[0]}-{zooms[-1]}" if zooms else "none"
            size = record.get_file_size() or 0
            print(f"  {record.id}")
            print(f"      Path: {record.archive_path}")
            print(f"      Bounds: {bounds_str} (lon_min, lat_min, lon_max, lat_max)")
            print(f"      Zoom: {zoom_str}")
            print(f"      Size: {size / (1024 * 1024):.1f} MB")

    def list_tile_sets(self) -> None:
        manifests = self.tile_service.manifests()
        if not manifests:
            print("No custom tile sets.")
            return
        print("Custom tile sets:")
        for manifest in manifests:
            print(f"  {manifest.name}: {manifest.tile_count} tiles, zoom "
                  f"{manifest.min_zoom}-{manifest.max_zoom}, {manifest.size_mb} MB")

    def show_statistics(self) -> None:
        """Tiles per zoom level for every archive, plus tile set totals"""
        print("Archive tiles per zoom level:")
        statistics = self.catalog.zoom_statistics()
        if not statistics:
            print("  none")
        for region_id, counts in statistics.items():
            levels = ", ".join(f"z{zoom}: {count}" for zoom, count in sorted(counts.items()))
            print(f"  {region_id}: {levels or 'empty'}")

        summary = self.metadata.get_metadata_summary()
        print(f"Custom tile sets: {summary['total_tile_sets']}, "
              f"{summary['total_tiles']} tiles, {summary['total_size_mb']} MB")

    # Command line

    def run_from_command_line(self, argv: Optional[List[str]] = None) -> int:
        args = build_parser().parse_args(argv)
        return self.execute(args)

    def execute(self, args: argparse.Namespace) -> int:
        self.startup()

        if args.list_regions:
            self.list_regions()
            return 0
        if args.list_archives:
            self.list_archives()
            return 0
        if args.list_tilesets:
            self.list_tile_sets()
            return 0
        if args.stats:
            self.show_statistics()
            return 0
        if args.region_for:
            lat, lon = args.region_for
            region_id = self.catalog.region_for(lat, lon)
            print(region_id if region_id else "No downloaded region covers this position.")
            return 0
        if args.delete_archive:
            self.catalog.delete(args.delete_archive)
            print(f"Deleted archive {args.delete_archive}")
            return 0
        if args.delete_tileset:
            self.tile_service.delete(args.delete_tileset)
            print(f"Deleted tile set {args.delete_tileset}")
            return 0
        if args.download_archive:
            return self._download_archive_cli(args.download_archive)
        if args.fetch:
            return self._fetch_cli(args)

        build_parser().print_help()
        return 0

    def _download_archive_cli(self, region_id: str) -> int:
        def on_progress(job: DownloadJob) -> None:
            if job.bytes_total:
                eta = f", ETA {job.eta_seconds:.0f}s" if job.eta_seconds is not None else ""
                print(f"\r  {job.progress * 100:5.1f}% of "
                      f"{job.bytes_total / (1024 * 1024):.1f} MB{eta}", end="", flush=True)

        print(f"=== Downloading archive {region_id.upper()} ===")
        job = self.download_archive(region_id, wait=True, on_progress=on_progress)
        print()
        if job is None:
            print("Another download is already running.")
            return 1
        if job.state == DownloadState.DONE:
            print(job.message)
            return 0
        if job.state == DownloadState.IDLE:
            print("Download cancelled.")
            return 1
        print(job.message)
        return 1

    def _fetch_cli(self, args: argparse.Namespace) -> int:
        if not args.center or not args.span:
            raise ValidationError("--fetch requires --center LAT LON and --span DLAT DLON")
        region = CoordinateRegion(args.center[0], args.center[1], args.span[0], args.span[1])

        def on_progress(completed: int, total: int) -> None:
            print(f"\r  {completed}/{total} tiles", end="", flush=True)

        print(f"=== Fetching tile set {args.fetch} ===")
        print(f"Zoom Levels: {args.min_zoom} to {args.max_zoom}")
        cancel_event = threading.Event()
        try:
            manifest = self.fetch_tile_set(args.fetch, region, args.min_zoom, args.max_zoom,
                                           cancel_event=cancel_event, on_progress=on_progress)
        except KeyboardInterrupt:
            cancel_event.set()
            raise
        finally:
            print()
        print(f"Saved {manifest.tile_count} tiles ({manifest.size_mb} MB) to {manifest.storage_path}")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="seachart-tiles",
        description="Offline nautical chart tiles: regional MBTiles archives and custom tile sets",
    )
    parser.add_argument('--config', default='config.json', help='Path to JSON config (default: config.json)')
    parser.add_argument('--list-regions', action='store_true', help='List downloadable regional archives')
    parser.add_argument('--list-archives', action='store_true', help='List archives on disk with bounds and zoom levels')
    parser.add_argument('--list-tilesets', action='store_true', help='List custom tile sets')
    parser.add_argument('--stats', action='store_true', help='Show tile counts per archive zoom level and tile set totals')
    parser.add_argument('--download-archive', metavar='REGION', help='Download a regional archive (e.g. northsea)')
    parser.add_argument('--delete-archive', metavar='REGION', help='Delete a downloaded regional archive')
    parser.add_argument('--region-for', nargs=2, type=float, metavar=('LAT', 'LON'),
                        help='Show which downloaded region covers a position')
    parser.add_argument('--fetch', metavar='NAME', help='Download a custom tile set with this name')
    parser.add_argument('--center', nargs=2, type=float, metavar=('LAT', 'LON'), help='Center of the custom area')
    parser.add_argument('--span', nargs=2, type=float, metavar=('DLAT', 'DLON'), help='Span of the custom area in degrees')
    parser.add_argument('--min-zoom', type=int, default=10, help='Minimum zoom level (default: 10)')
    parser.add_argument('--max-zoom', type=int, default=14, help='Maximum zoom level (default: 14)')
    parser.add_argument('--delete-tileset', metavar='NAME', help='Delete a custom tile set')
    return parser
