#!/usr/bin/env python3
"""
Coffee Graph Admin - CLI for ingestion, maintenance jobs and queries
"""

import json
import logging
import sys

import click
from dotenv import load_dotenv

from coffee_graph.core.errors import CoffeeGraphError
from coffee_graph.core.flavor_wheel import FlavorWheel
from coffee_graph.core.query_planner import QueryPlanner, QueryType
from coffee_graph.core.taxonomy import default_registry, load_registry
from coffee_graph.data_pipeline.database import PostgresGraphStore
from coffee_graph.data_pipeline.graph_writer import GraphWriter
from coffee_graph.data_pipeline.maintenance import GraphMaintainer
from coffee_graph.data_pipeline.record_catalog import RecordCatalog
from coffee_graph.settings import load_settings

logger = logging.getLogger(__name__)

MODES = [
    'init-schema', 'seed-taxonomy', 'ingest', 'resync', 'repair-origins',
    'backfill-countries', 'sweep-orphans', 'rebuild', 'query', 'stats', 'flavor-wheel'
]

RECORD_MODES = {'ingest', 'resync', 'rebuild'}


@click.command()
@click.option('--mode', type=click.Choice(MODES), required=True, help='Operation mode')
@click.option('--records', type=click.Path(exists=True, dir_okay=False),
              help='CSV or JSON export of product records')
@click.option('--product-id', help='Limit ingest/resync to one product')
@click.option('--brand', help='Limit resync to one brand')
@click.option('--query-type', type=click.Choice([t.value for t in QueryType]), help='Query type for query mode')
@click.option('--reference', help='Reference product id')
@click.option('--name', help='Product name filter')
@click.option('--brand-name', help='Brand name filter')
@click.option('--category', help='SCA category (fruity, floral, sweet, nutty, spices, roasted, green, sour, other)')
@click.option('--axis', help='Character axis (acidity, body, roast, complexity)')
@click.option('--origin', help='Origin filter')
@click.option('--process', help='Process filter')
@click.option('--roast', help='Roast level filter')
@click.option('--min-price', type=float, help='Minimum price')
@click.option('--max-price', type=float, help='Maximum price')
@click.option('--limit', type=int, help='Result limit')
@click.option('--subcategory', help='Flavor wheel subcategory to list products for')
@click.option('--include-empty', is_flag=True, help='Keep flavor wheel branches no product reaches')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='Settings YAML')
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
def main(mode, records, product_id, brand, query_type, reference, name, brand_name, category, axis,
         origin, process, roast, min_price, max_price, limit, subcategory, include_empty, config_path, log_level):
    """Coffee Graph Admin - maintain and query the coffee knowledge graph"""
    load_dotenv()
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if mode in RECORD_MODES and not records:
        click.echo(f"❌ --records required for {mode} mode")
        sys.exit(1)
    if mode == 'query' and not query_type:
        click.echo("❌ --query-type required for query mode")
        sys.exit(1)

    settings = load_settings(config_path)
    registry = load_registry(settings.lexicon_path) if settings.lexicon_path else default_registry()
    catalog = RecordCatalog.from_file(records) if records else None

    store = PostgresGraphStore()
    try:
        writer = GraphWriter(store, registry)
        maintainer = GraphMaintainer(store, writer, catalog)

        if mode == 'init-schema':
            store.initialize_schema()
            created = writer.seed_taxonomy()
            click.echo(f"✅ Schema ready, {created} taxonomy nodes created")
        elif mode == 'seed-taxonomy':
            created = writer.seed_taxonomy()
            click.echo(f"✅ {created} taxonomy nodes created")
        elif mode == 'ingest':
            run_ingest(writer, catalog, product_id)
        elif mode == 'resync':
            echo_report(maintainer.resync(product_id=product_id, brand=brand))
        elif mode == 'repair-origins':
            echo_report(maintainer.repair_malformed_origins())
        elif mode == 'backfill-countries':
            echo_report(maintainer.backfill_core_country_nodes())
        elif mode == 'sweep-orphans':
            echo_report(maintainer.sweep_orphans())
        elif mode == 'rebuild':
            echo_report(maintainer.cleanup_and_rebuild())
        elif mode == 'query':
            planner = QueryPlanner(store, registry, settings.query)
            results = planner.query(
                query_type,
                reference_product_id=reference,
                limit=limit,
                product_name=name,
                brand_name=brand_name,
                sca_category=category,
                character_axis=axis,
                origin=origin,
                process=process,
                roast_level=roast,
                min_price=min_price,
                max_price=max_price,
            )
            click.echo(json.dumps([r.to_dict() for r in results], indent=2, default=str))
        elif mode == 'stats':
            echo_stats(store.stats())
        elif mode == 'flavor-wheel':
            wheel = FlavorWheel(store, registry)
            if subcategory:
                data = wheel.products_by_subcategory(subcategory)
                click.echo(f"🎯 {data['product_count']} products in {data['category']} / {data['subcategory']}")
            else:
                data = wheel.build(include_empty=include_empty)
                click.echo(f"🎯 {data['total_flavors']} flavors across {data['total_categories']} categories")
            click.echo(json.dumps(data, indent=2, default=str))
    except CoffeeGraphError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)
    finally:
        store.close()


def run_ingest(writer: GraphWriter, catalog: RecordCatalog, product_id=None):
    """Ingest one product or the whole catalog"""
    if product_id:
        record = catalog.get(product_id)
        if record is None:
            click.echo(f"❌ Product {product_id} not found in records")
            sys.exit(1)
        result = writer.ingest(record)
        click.echo(f"✅ {result.product_id}: {result.edge_count} edges, {result.nodes_created} new nodes")
        if result.unclassified_notes:
            click.echo(f"  Unclassified notes: {', '.join(result.unclassified_notes)}")
        return

    summary = writer.ingest_many(catalog.all())
    click.echo(f"✅ Ingested {summary['ingested']} products ({summary['created']} new)")
    if summary['failed']:
        click.echo(f"❌ {summary['failed']} failed: {', '.join(summary['failed_ids'])}")


def echo_report(report):
    status = "✅" if not report.failed else "⚠️ "
    click.echo(f"{status} {report.operation}: {report.processed} processed, "
               f"{report.changed} changed, {report.failed} failed")
    click.echo(json.dumps(report.details, indent=2, default=str))


def echo_stats(stats):
    click.echo(f"📊 {stats['products']} products, {stats['nodes']} nodes, {stats['edges']} edges")
    for label, count in stats['nodes_by_label'].items():
        click.echo(f"  {label}: {count}")


if __name__ == '__main__':
    main()
