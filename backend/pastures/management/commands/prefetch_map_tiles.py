from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from pastures.exceptions import PersistenceError
from pastures.map_layers import MAP_LAYERS, get_layer, default_layer
from pastures.services import get_property_map
from pastures.tiles import farm_extent, tiles_for_zoom_range, prefetch_tiles


class Command(BaseCommand):
    help = 'Fetch basemap tiles covering the farm so the map loads quickly in the field'

    def add_arguments(self, parser):
        parser.add_argument(
            '--layer',
            choices=[layer.id for layer in MAP_LAYERS],
            help='Tile layer to prefetch (defaults to MAP_DEFAULT_LAYER)',
        )
        parser.add_argument('--min-zoom', type=int, default=14)
        parser.add_argument('--max-zoom', type=int, default=18)
        parser.add_argument(
            '--limit',
            type=int,
            default=settings.TILE_PREFETCH_LIMIT,
            help='Maximum number of tiles to request',
        )
        parser.add_argument('--timeout', type=int, default=settings.TILE_PREFETCH_TIMEOUT)
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the tiles that would be fetched without requesting them',
        )

    def handle(self, *args, **options):
        layer = get_layer(options['layer']) if options['layer'] else default_layer()
        min_zoom, max_zoom = options['min_zoom'], options['max_zoom']
        if min_zoom > max_zoom:
            raise CommandError('--min-zoom must not be greater than --max-zoom')
        if options['limit'] < 0:
            raise CommandError('--limit must not be negative')

        try:
            property_map = get_property_map()
        except PersistenceError as e:
            raise CommandError(str(e))
        extent = farm_extent(property_map)
        tiles = tiles_for_zoom_range(extent, min_zoom, max_zoom)
        self.stdout.write(
            f"{len(tiles)} '{layer.id}' tiles cover the farm at zoom {min_zoom}-{max_zoom} "
            f"(limit {options['limit']})"
        )

        if options['dry_run']:
            for z, x, y in tiles[:options['limit']]:
                self.stdout.write(layer.tile_url(z, x, y))
            self.stdout.write(self.style.WARNING('\nThis was a dry run. No tiles were fetched.'))
            return

        fetched, failed, skipped = prefetch_tiles(
            layer, tiles, limit=options['limit'], timeout=options['timeout'],
        )
        self.stdout.write(f'Fetched: {fetched}')
        self.stdout.write(f'Failed: {failed}')
        self.stdout.write(f'Skipped (over limit): {skipped}')

        if failed:
            self.stdout.write(self.style.ERROR(f'{failed} tile(s) could not be fetched'))
        else:
            self.stdout.write(self.style.SUCCESS('Tile prefetch complete!'))
