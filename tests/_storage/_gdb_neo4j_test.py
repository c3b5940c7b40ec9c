"""Unit tests for the Neo4j graph repository.

The async driver is replaced by an in-memory fake that records every statement and
serves canned rows, so these tests check the Cypher sent and the mapping of results,
not a live database.
"""
# type: ignore
import unittest

import numpy as np
from neo4j.exceptions import ServiceUnavailable

from muralla._config import Neo4jConfig
from muralla._exceptions import DatabaseError
from muralla._storage import EMPTY_GRAPH_SENTINEL, Neo4jGraphRepository
from muralla._storage._gdb_neo4j import quote_relation_kind
from muralla._types import TChunk, TEntity, TInferredRelation, TKnowledgeExtraction, TRelation


class FakeRecord:
    def __init__(self, row):
        self._row = row

    def data(self):
        return dict(self._row)


class FakeResult:
    def __init__(self, rows):
        self._rows = rows

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for row in self._rows:
            yield FakeRecord(row)


class FakeTransaction:
    def __init__(self, driver):
        self._driver = driver

    async def run(self, query, params=None):
        self._driver.statements.append((query, params or {}))
        if self._driver.error is not None:
            raise self._driver.error
        return FakeResult(self._driver.rows.pop(0) if self._driver.rows else [])


class FakeSession:
    def __init__(self, driver):
        self._driver = driver

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False

    async def execute_write(self, work):
        self._driver.transactions.append("write")
        return await work(FakeTransaction(self._driver))

    async def execute_read(self, work):
        self._driver.transactions.append("read")
        return await work(FakeTransaction(self._driver))


class FakeDriver:
    def __init__(self, rows=None, error=None):
        self.rows = list(rows or [])
        self.error = error
        self.statements = []
        self.transactions = []
        self.databases = []
        self.closed = False

    def session(self, database=None):
        self.databases.append(database)
        return FakeSession(self)

    async def close(self):
        self.closed = True


def _repo(rows=None, error=None, embedding_dim=3):
    driver = FakeDriver(rows=rows, error=error)
    repo = Neo4jGraphRepository(
        config=Neo4jConfig(uri="bolt://test:7687", database="kg"), driver=driver, embedding_dim=embedding_dim
    )
    return repo, driver


class TestNeo4jGraphRepositoryWrites(unittest.IsolatedAsyncioTestCase):
    """Test suite for schema and write statements."""

    async def test_create_indexes(self):
        """Test the vector index, the entity constraint and the chunk constraint."""
        repo, driver = _repo(embedding_dim=None)

        await repo.create_indexes(768)

        queries = [q for q, _ in driver.statements]
        self.assertIn("CREATE VECTOR INDEX chunk_embeddings IF NOT EXISTS", queries[0])
        self.assertIn("`vector.dimensions`: 768", queries[0])
        self.assertIn("'cosine'", queries[0])
        self.assertIn("REQUIRE e.name IS UNIQUE", queries[1])
        self.assertIn("REQUIRE c.id IS UNIQUE", queries[2])
        self.assertIn("SHOW INDEXES", queries[3])
        self.assertEqual(driver.statements[3][1], {"name": "chunk_embeddings"})
        self.assertEqual(driver.transactions[3], "read")
        self.assertEqual(repo.embedding_dim, 768)
        self.assertEqual(set(driver.databases), {"kg"})

    async def test_create_indexes_existing_index(self):
        """Test that an index built for another dimension is reported instead of silently kept."""
        index_row = {"options": {"indexConfig": {"vector.dimensions": 1536, "vector.similarity_function": "cosine"}}}
        repo, driver = _repo(rows=[[], [], [], [index_row]], embedding_dim=None)

        with self.assertRaises(DatabaseError):
            await repo.create_indexes(768)
        self.assertIsNone(repo.embedding_dim)

        driver.rows = [[], [], [], [index_row]]
        await repo.create_indexes(1536)
        self.assertEqual(repo.embedding_dim, 1536)

    async def test_save_chunk(self):
        """Test that the embedding is sent as a plain list of floats."""
        repo, driver = _repo()

        await repo.save_chunk(TChunk(id="c1", content="hello", embedding=np.array([1, 2, 3], dtype=np.float32)))

        query, params = driver.statements[0]
        self.assertIn("CREATE (c:DocumentChunk", query)
        self.assertEqual(params, {"id": "c1", "content": "hello", "embedding": [1.0, 2.0, 3.0]})

    async def test_save_chunk_dimension_mismatch(self):
        """Test that a wrong-length embedding never reaches the database."""
        repo, driver = _repo()

        with self.assertRaises(DatabaseError):
            await repo.save_chunk(TChunk(id="c1", content="x", embedding=np.zeros(4, dtype=np.float32)))
        self.assertEqual(driver.statements, [])

    async def test_save_graph_single_transaction(self):
        """Test entity merges, escaped relation kinds and mentions in one write transaction."""
        repo, driver = _repo()
        extraction = TKnowledgeExtraction(
            entities=[TEntity(name="Paris", category="City"), TEntity(name="France", category="Country")],
            relations=[
                TRelation(source="Paris", target="France", relation_type="capital of"),
                TRelation(source="Paris", target="France", relation_type=""),
            ],
        )

        await repo.save_graph("c1", extraction)

        self.assertEqual(driver.transactions, ["write"])
        queries = [q for q, _ in driver.statements]
        self.assertEqual(len(queries), 4)
        self.assertIn("ON CREATE SET e.category = $category", queries[0])
        self.assertEqual(driver.statements[0][1], {"name": "Paris", "category": "City"})
        self.assertIn("MERGE (a)-[:`CAPITAL_OF`]->(b)", queries[2])
        self.assertIn("MERGE (c)-[:MENTIONS]->(e)", queries[3])
        self.assertEqual(driver.statements[3][1], {"cid": "c1", "names": ["Paris", "France"]})

    async def test_save_inferred_relations(self):
        """Test that inferred edges are tagged as AI-generated with their reasoning."""
        repo, driver = _repo()

        await repo.save_inferred_relations(
            [
                TInferredRelation(source="A", target="C", relation="lleva a", reasoning="A->B->C"),
                TInferredRelation(source="A", target="C", relation=""),
            ]
        )

        self.assertEqual(driver.transactions, ["write"])
        self.assertEqual(len(driver.statements), 1)
        query, params = driver.statements[0]
        self.assertIn("MERGE (a)-[r:`INFERRED_LLEVA_A`]->(b)", query)
        self.assertIn("r.is_ai_generated = true", query)
        self.assertEqual(params["reasoning"], "A->B->C")

    async def test_driver_errors_wrapped(self):
        """Test that driver exceptions surface as DatabaseError."""
        repo, _ = _repo(error=ServiceUnavailable("connection refused"))

        with self.assertRaises(DatabaseError) as ctx:
            await repo.reset_database()
        self.assertIsInstance(ctx.exception.__cause__, ServiceUnavailable)

    async def test_close(self):
        """Test that closing the repository closes the driver."""
        repo, driver = _repo()

        await repo.close()

        self.assertTrue(driver.closed)

    def test_quote_relation_kind(self):
        """Test that backticks inside a kind are doubled."""
        self.assertEqual(quote_relation_kind("A`B"), "`A``B`")


class TestNeo4jGraphRepositoryReads(unittest.IsolatedAsyncioTestCase):
    """Test suite for read queries and result mapping."""

    async def test_find_hybrid_context(self):
        """Test the vector query and the sorting of entity names."""
        rows = [[
            {"id": "c1", "content": "text 1", "entities": ["Paris", "France"]},
            {"id": "c2", "content": "text 2", "entities": []},
        ]]
        repo, driver = _repo(rows=rows)

        contexts = await repo.find_hybrid_context(np.array([1, 0, 0], dtype=np.float32), 3)

        query, params = driver.statements[0]
        self.assertIn("db.index.vector.queryNodes('chunk_embeddings', $limit, $embedding)", query)
        self.assertIn("OPTIONAL MATCH", query)
        self.assertEqual(params["limit"], 3)
        self.assertEqual(driver.transactions, ["read"])
        self.assertEqual([c.chunk_id for c in contexts], ["c1", "c2"])
        self.assertEqual(contexts[0].entities, ["France", "Paris"])
        self.assertEqual(contexts[1].entities, [])

    async def test_reasoning_context(self):
        """Test rendering of relations and the empty-graph sentinel."""
        repo, _ = _repo(rows=[[{"source": "A", "kind": "LLEVA_A", "target": "B"}]])
        self.assertEqual(await repo.get_graph_context_for_reasoning(), "(A) -[LLEVA_A]-> (B)\n")

        empty, _ = _repo(rows=[[]])
        self.assertEqual(await empty.get_graph_context_for_reasoning(), EMPTY_GRAPH_SENTINEL)

    async def test_full_graph(self):
        """Test that nodes are deduplicated across edges."""
        rows = [[
            {"source": "A", "source_category": "Person", "kind": "KNOWS", "target": "B", "target_category": None},
            {"source": "B", "source_category": None, "kind": "KNOWS", "target": "A", "target_category": "Person"},
        ]]
        repo, _ = _repo(rows=rows)

        view = await repo.get_full_graph()

        self.assertEqual([(n.id, n.group) for n in view.nodes], [("A", "Person"), ("B", "Concept")])
        self.assertEqual(len(view.edges), 2)

    async def test_concept_neighborhood_direction(self):
        """Test that edge direction follows the stored relation."""
        rows = [[
            {"center": "Paris", "center_category": "City", "kind": "CAPITAL_OF", "is_source": True,
             "neighbor": "France", "neighbor_category": "Country"},
            {"center": "Paris", "center_category": "City", "kind": "FLOWS_THROUGH", "is_source": False,
             "neighbor": "Seine", "neighbor_category": "River"},
        ]]
        repo, _ = _repo(rows=rows)

        view = await repo.get_concept_neighborhood("Paris")

        self.assertEqual([n.id for n in view.nodes], ["France", "Paris", "Seine"])
        self.assertEqual(
            [(e.source, e.target) for e in view.edges], [("Paris", "France"), ("Seine", "Paris")]
        )

    async def test_concept_neighborhood_lone_node(self):
        """Test the fallback to the center node when it has no relations."""
        repo, driver = _repo(rows=[[], [{"center": "Alone", "center_category": "Concept"}]])

        view = await repo.get_concept_neighborhood("Alone")

        self.assertEqual(len(driver.statements), 2)
        self.assertEqual([n.id for n in view.nodes], ["Alone"])
        self.assertEqual(view.edges, [])


if __name__ == "__main__":
    unittest.main()
