"""
PostgreSQL graph store for the coffee knowledge graph

Handles PostgreSQL connections and maps the graph primitives onto three
tables: products, graph_nodes and product_edges.
"""

import os
import logging
import threading
from typing import Any, Dict, List, Optional, Set
from contextlib import contextmanager
from datetime import datetime
import psycopg2
from psycopg2.extras import RealDictCursor, Json
from psycopg2.pool import ThreadedConnectionPool
from tenacity import retry, stop_after_attempt, wait_exponential

from coffee_graph.core.errors import InvalidArgumentError
from coffee_graph.data_pipeline.graph_store import (
    LEVEL_PROPERTY, OVERLAP_LEVELS, WHEEL_LEVELS, WHEEL_PROPERTY, GraphStore, as_label, as_rel_type
)
from coffee_graph.data_pipeline.models import Edge, GraphNode, NodeLabel, ProductNode, RelType

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS products (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    brand TEXT,
    price NUMERIC,
    currency TEXT,
    in_stock BOOLEAN,
    flavor_profile DOUBLE PRECISION[] NOT NULL,
    character_axes DOUBLE PRECISION[] NOT NULL,
    updated_at TIMESTAMP NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS graph_nodes (
    label TEXT NOT NULL,
    id TEXT NOT NULL,
    props JSONB NOT NULL DEFAULT '{}'::jsonb,
    PRIMARY KEY (label, id)
);

CREATE TABLE IF NOT EXISTS product_edges (
    product_id TEXT NOT NULL REFERENCES products(id) ON DELETE CASCADE,
    rel_type TEXT NOT NULL,
    target_label TEXT NOT NULL,
    target_id TEXT NOT NULL,
    PRIMARY KEY (product_id, rel_type, target_label, target_id),
    FOREIGN KEY (target_label, target_id) REFERENCES graph_nodes(label, id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_product_edges_target ON product_edges (target_label, target_id);
CREATE INDEX IF NOT EXISTS idx_graph_nodes_attribute ON graph_nodes ((props->>'attribute_id'))
    WHERE label = 'TastingNote';
"""


class PostgresGraphStore(GraphStore):
    """Manages PostgreSQL connections and graph operations."""

    def __init__(self, connection_params: Optional[Dict[str, Any]] = None,
                 min_connections: int = 1, max_connections: int = 10):
        """
        Initialize the PostgreSQL graph store.

        Args:
            connection_params: Database connection parameters
                - host: Database host
                - port: Database port
                - database: Database name
                - user: Database user
                - password: Database password
            min_connections: Pool lower bound
            max_connections: Pool upper bound
        """
        if connection_params:
            self.connection_params = connection_params
        else:
            # Load from environment variables
            self.connection_params = {
                'host': os.getenv('POSTGRES_HOST', 'localhost'),
                'port': os.getenv('POSTGRES_PORT', '5432'),
                'database': os.getenv('POSTGRES_DB', 'coffee_graph'),
                'user': os.getenv('POSTGRES_USER', 'postgres'),
                'password': os.getenv('POSTGRES_PASSWORD', '')
            }

        self._local = threading.local()
        self.pool = None
        self._initialize_pool(min_connections, max_connections)

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=10), reraise=True)
    def _initialize_pool(self, min_connections: int, max_connections: int):
        """Initialize connection pool."""
        try:
            self.pool = ThreadedConnectionPool(
                min_connections,
                max_connections,
                **self.connection_params
            )
            logger.info("Database connection pool initialized")
        except psycopg2.Error as e:
            logger.error(f"Failed to initialize connection pool: {e}")
            raise

    @contextmanager
    def get_connection(self):
        """Get a database connection, reusing the one bound to an open transaction."""
        active = getattr(self._local, "connection", None)
        if active is not None:
            yield active
            return

        connection = None
        try:
            connection = self.pool.getconn()
            yield connection
            connection.commit()
        except Exception as e:
            if connection:
                connection.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            if connection:
                self.pool.putconn(connection)

    @contextmanager
    def get_cursor(self, cursor_factory=RealDictCursor):
        """Get a database cursor."""
        with self.get_connection() as conn:
            cursor = conn.cursor(cursor_factory=cursor_factory)
            try:
                yield cursor
            finally:
                cursor.close()

    @contextmanager
    def transaction(self):
        """Bind one pooled connection to this thread until the block commits."""
        if getattr(self._local, "connection", None) is not None:
            yield self
            return

        with self.get_connection() as conn:
            self._local.connection = conn
            try:
                yield self
            finally:
                self._local.connection = None

    def execute_query(self, query: str, params: Optional[Any] = None) -> List[Dict]:
        """
        Execute a SELECT query and return results.

        Args:
            query: SQL query string
            params: Query parameters

        Returns:
            List of dictionaries representing rows
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor.fetchall()

    def execute_update(self, query: str, params: Optional[Any] = None) -> int:
        """
        Execute an INSERT/UPDATE/DELETE query.

        Returns:
            Number of affected rows
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor.rowcount

    def initialize_schema(self):
        """Create the graph tables if they do not exist."""
        with self.get_cursor() as cursor:
            cursor.execute(SCHEMA_SQL)
        logger.info("Graph schema initialized")

    # Shared nodes

    def upsert_node(self, node: GraphNode) -> bool:
        query = """
        INSERT INTO graph_nodes (label, id, props)
        VALUES (%s, %s, %s)
        ON CONFLICT (label, id) DO UPDATE SET
            props = graph_nodes.props || EXCLUDED.props
        RETURNING (xmax = 0) AS inserted
        """
        rows = self.execute_query(query, (as_label(node.label).value, node.id, Json(node.props)))
        return bool(rows and rows[0]['inserted'])

    def get_node(self, label: NodeLabel, node_id: str) -> Optional[GraphNode]:
        query = "SELECT label, id, props FROM graph_nodes WHERE label = %s AND id = %s"
        rows = self.execute_query(query, (as_label(label).value, node_id))
        return self._row_to_node(rows[0]) if rows else None

    def list_nodes(self, label: NodeLabel) -> List[GraphNode]:
        query = "SELECT label, id, props FROM graph_nodes WHERE label = %s ORDER BY id"
        return [self._row_to_node(row) for row in self.execute_query(query, (as_label(label).value,))]

    def _delete_node(self, label: NodeLabel, node_id: str) -> bool:
        query = "DELETE FROM graph_nodes WHERE label = %s AND id = %s"
        return self.execute_update(query, (label.value, node_id)) > 0

    # Products

    def upsert_product(self, product: ProductNode) -> bool:
        query = """
        INSERT INTO products
        (id, name, brand, price, currency, in_stock, flavor_profile, character_axes, updated_at)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (id) DO UPDATE SET
            name = EXCLUDED.name,
            brand = EXCLUDED.brand,
            price = EXCLUDED.price,
            currency = EXCLUDED.currency,
            in_stock = EXCLUDED.in_stock,
            flavor_profile = EXCLUDED.flavor_profile,
            character_axes = EXCLUDED.character_axes,
            updated_at = EXCLUDED.updated_at
        RETURNING (xmax = 0) AS inserted
        """
        params = (
            product.id,
            product.name,
            product.brand,
            product.price,
            product.currency,
            product.in_stock,
            list(product.flavor_profile),
            list(product.character_axes),
            product.updated_at or datetime.now()
        )
        rows = self.execute_query(query, params)
        return bool(rows and rows[0]['inserted'])

    def get_product(self, product_id: str) -> Optional[ProductNode]:
        rows = self.execute_query("SELECT * FROM products WHERE id = %s", (product_id,))
        return self._row_to_product(rows[0]) if rows else None

    def list_products(self) -> List[ProductNode]:
        return [self._row_to_product(row) for row in self.execute_query("SELECT * FROM products ORDER BY id")]

    def delete_product(self, product_id: str) -> bool:
        # Edges go with the product through ON DELETE CASCADE
        return self.execute_update("DELETE FROM products WHERE id = %s", (product_id,)) > 0

    def products_by_name(self, text: str) -> List[ProductNode]:
        needle = (text or "").strip()
        if not needle:
            return []
        query = "SELECT * FROM products WHERE name ILIKE %s ORDER BY id"
        return [self._row_to_product(row) for row in self.execute_query(query, (f"%{needle}%",))]

    def products_by_brand(self, text: str) -> List[ProductNode]:
        needle = (text or "").strip()
        if not needle:
            return []
        query = "SELECT * FROM products WHERE brand ILIKE %s ORDER BY id"
        return [self._row_to_product(row) for row in self.execute_query(query, (f"%{needle}%",))]

    # Edges

    def attach_edge(self, edge: Edge) -> bool:
        query = """
        INSERT INTO product_edges (product_id, rel_type, target_label, target_id)
        VALUES (%s, %s, %s, %s)
        ON CONFLICT DO NOTHING
        """
        params = (edge.product_id, as_rel_type(edge.rel_type).value, as_label(edge.target_label).value, edge.target_id)
        try:
            return self.execute_update(query, params) == 1
        except psycopg2.IntegrityError as e:
            raise InvalidArgumentError(
                f"Cannot link {edge.product_id} to {edge.target_label}:{edge.target_id}: {e}"
            ) from e

    def _detach_edge(self, edge: Edge) -> bool:
        query = """
        DELETE FROM product_edges
        WHERE product_id = %s AND rel_type = %s AND target_label = %s AND target_id = %s
        """
        params = (edge.product_id, as_rel_type(edge.rel_type).value, as_label(edge.target_label).value, edge.target_id)
        return self.execute_update(query, params) > 0

    def detach_edges(self, product_id: str, rel_type: Optional[RelType] = None) -> int:
        if rel_type is None:
            return self.execute_update("DELETE FROM product_edges WHERE product_id = %s", (product_id,))
        query = "DELETE FROM product_edges WHERE product_id = %s AND rel_type = %s"
        return self.execute_update(query, (product_id, as_rel_type(rel_type).value))

    def product_edges(self, product_id: str) -> List[Edge]:
        query = """
        SELECT product_id, rel_type, target_label, target_id
        FROM product_edges
        WHERE product_id = %s
        ORDER BY rel_type, target_label, target_id
        """
        return [self._row_to_edge(row) for row in self.execute_query(query, (product_id,))]

    def edges_to(self, label: NodeLabel, node_id: str) -> List[Edge]:
        query = """
        SELECT product_id, rel_type, target_label, target_id
        FROM product_edges
        WHERE target_label = %s AND target_id = %s
        ORDER BY product_id, rel_type
        """
        return [self._row_to_edge(row) for row in self.execute_query(query, (as_label(label).value, node_id))]

    def count_target_edges(self, label: NodeLabel, node_id: str) -> int:
        query = "SELECT COUNT(*) AS edge_count FROM product_edges WHERE target_label = %s AND target_id = %s"
        rows = self.execute_query(query, (as_label(label).value, node_id))
        return int(rows[0]['edge_count']) if rows else 0

    def repoint_edges(self, label: NodeLabel, from_id: str, to_id: str) -> int:
        label = as_label(label)
        with self.transaction():
            moved = self.execute_update(
                """
                INSERT INTO product_edges (product_id, rel_type, target_label, target_id)
                SELECT product_id, rel_type, target_label, %s
                FROM product_edges
                WHERE target_label = %s AND target_id = %s
                ON CONFLICT DO NOTHING
                """,
                (to_id, label.value, from_id)
            )
            self.execute_update(
                "DELETE FROM product_edges WHERE target_label = %s AND target_id = %s",
                (label.value, from_id)
            )
        return moved

    # Aggregate reads

    def tier_keys(self, product_id: str, level: str) -> Set[str]:
        if level not in OVERLAP_LEVELS:
            raise InvalidArgumentError(f"Unknown overlap level '{level}'")

        if level == "note":
            query = """
            SELECT target_id AS key FROM product_edges
            WHERE product_id = %s AND rel_type = 'HAS_TASTING_NOTE'
            """
            rows = self.execute_query(query, (product_id,))
        else:
            query = """
            SELECT DISTINCT n.props->>%(prop)s AS key
            FROM product_edges e
            JOIN graph_nodes n ON n.label = e.target_label AND n.id = e.target_id
            WHERE e.product_id = %(product_id)s
              AND e.rel_type = 'HAS_TASTING_NOTE'
              AND n.props->>%(prop)s IS NOT NULL
            """
            rows = self.execute_query(query, {'prop': LEVEL_PROPERTY[level], 'product_id': product_id})
        return {row['key'] for row in rows}

    def overlap_counts(self, product_id: str, level: str) -> Dict[str, int]:
        if level not in OVERLAP_LEVELS:
            raise InvalidArgumentError(f"Unknown overlap level '{level}'")

        if level == "note":
            query = """
            SELECT e2.product_id, COUNT(DISTINCT e2.target_id) AS shared
            FROM product_edges e1
            JOIN product_edges e2
              ON e2.rel_type = e1.rel_type
             AND e2.target_label = e1.target_label
             AND e2.target_id = e1.target_id
            WHERE e1.product_id = %(product_id)s
              AND e1.rel_type = 'HAS_TASTING_NOTE'
              AND e2.product_id <> %(product_id)s
            GROUP BY e2.product_id
            """
            params = {'product_id': product_id}
        else:
            query = """
            WITH reference_keys AS (
                SELECT DISTINCT n.props->>%(prop)s AS key
                FROM product_edges e
                JOIN graph_nodes n ON n.label = e.target_label AND n.id = e.target_id
                WHERE e.product_id = %(product_id)s
                  AND e.rel_type = 'HAS_TASTING_NOTE'
                  AND n.props->>%(prop)s IS NOT NULL
            )
            SELECT e.product_id, COUNT(DISTINCT n.props->>%(prop)s) AS shared
            FROM product_edges e
            JOIN graph_nodes n ON n.label = e.target_label AND n.id = e.target_id
            JOIN reference_keys r ON r.key = n.props->>%(prop)s
            WHERE e.rel_type = 'HAS_TASTING_NOTE'
              AND e.product_id <> %(product_id)s
            GROUP BY e.product_id
            """
            params = {'prop': LEVEL_PROPERTY[level], 'product_id': product_id}

        return {row['product_id']: int(row['shared']) for row in self.execute_query(query, params)}

    def stats(self) -> Dict[str, Any]:
        nodes_by_label = {label.value: 0 for label in NodeLabel}
        for row in self.execute_query("SELECT label, COUNT(*) AS node_count FROM graph_nodes GROUP BY label"):
            nodes_by_label[row['label']] = int(row['node_count'])

        query = """
        SELECT
            (SELECT COUNT(*) FROM products) AS product_count,
            (SELECT COUNT(*) FROM product_edges) AS edge_count
        """
        totals = self.execute_query(query)[0]
        return {
            "products": int(totals['product_count']),
            "nodes": sum(nodes_by_label.values()),
            "nodes_by_label": nodes_by_label,
            "edges": int(totals['edge_count']),
        }

    def taxonomy_product_counts(self) -> Dict[str, Dict[str, int]]:
        query = """
        SELECT n.props->>%(prop)s AS key, COUNT(DISTINCT e.product_id) AS product_count
        FROM product_edges e
        JOIN graph_nodes n ON n.label = e.target_label AND n.id = e.target_id
        WHERE e.rel_type = 'HAS_TASTING_NOTE'
          AND n.props->>%(prop)s IS NOT NULL
        GROUP BY 1
        """
        counts = {}
        for level in WHEEL_LEVELS:
            rows = self.execute_query(query, {'prop': WHEEL_PROPERTY[level]})
            counts[level] = {row['key']: int(row['product_count']) for row in rows}
        return counts

    def products_in_subcategory(self, subcategory_id: str) -> Dict[str, List[str]]:
        query = """
        SELECT e.product_id, e.target_id AS note_id
        FROM product_edges e
        JOIN graph_nodes n ON n.label = e.target_label AND n.id = e.target_id
        WHERE e.rel_type = 'HAS_TASTING_NOTE'
          AND n.props->>'subcategory_id' = %s
        ORDER BY e.product_id, e.target_id
        """
        matches: Dict[str, List[str]] = {}
        for row in self.execute_query(query, (subcategory_id,)):
            matches.setdefault(row['product_id'], []).append(row['note_id'])
        return matches

    # Row mapping

    @staticmethod
    def _row_to_node(row: Dict) -> GraphNode:
        return GraphNode(label=NodeLabel(row['label']), id=row['id'], props=dict(row['props'] or {}))

    @staticmethod
    def _row_to_edge(row: Dict) -> Edge:
        return Edge(
            product_id=row['product_id'],
            rel_type=RelType(row['rel_type']),
            target_label=NodeLabel(row['target_label']),
            target_id=row['target_id']
        )

    @staticmethod
    def _row_to_product(row: Dict) -> ProductNode:
        return ProductNode(
            id=row['id'],
            name=row['name'],
            brand=row.get('brand'),
            price=float(row['price']) if row.get('price') is not None else None,
            currency=row.get('currency'),
            in_stock=row.get('in_stock'),
            flavor_profile=tuple(float(v) for v in row['flavor_profile']),
            character_axes=tuple(float(v) for v in row['character_axes']),
            updated_at=row.get('updated_at')
        )

    def close(self):
        """Close all database connections."""
        if self.pool:
            self.pool.closeall()
            logger.info("Database connection pool closed")
