"""Unit tests for the igraph graph repository.

This module tests:
- Chunk storage with dimension and id checks
- Entity merging, relation normalization and MENTIONS links
- Hybrid retrieval ranking and entity joins
- Reasoning context rendering and inferred relations
- Visualization views, reset and persistence to disk
"""
# type: ignore
import os
import tempfile
import unittest
from unittest.mock import patch

import igraph as ig
import numpy as np

from muralla._exceptions import DatabaseError
from muralla._storage import EMPTY_GRAPH_SENTINEL, IGraphRepository, IGraphRepositoryConfig
from muralla._types import TChunk, TEntity, TInferredRelation, TKnowledgeExtraction, TRelation


def _vec(*values):
    return np.array(values, dtype=np.float32)


def _extraction(entities, relations=()):
    return TKnowledgeExtraction(
        entities=[TEntity(name=n, category=c) for n, c in entities],
        relations=[TRelation(source=s, target=t, relation_type=k) for s, k, t in relations],
    )


class TestIGraphRepositoryWrites(unittest.IsolatedAsyncioTestCase):
    """Test suite for chunk, entity and relation writes."""

    async def asyncSetUp(self):
        self.repo = IGraphRepository()
        await self.repo.create_indexes(3)

    async def test_entity_category_fixed_on_creation(self):
        """Test that merging an existing entity keeps its first category."""
        await self.repo.save_chunk(TChunk(id="c1", content="Paris...", embedding=_vec(1, 0, 0)))
        await self.repo.save_chunk(TChunk(id="c2", content="Paris again", embedding=_vec(0, 1, 0)))
        await self.repo.save_graph("c1", _extraction([("Paris", "City")]))
        await self.repo.save_graph("c2", _extraction([("Paris", "Person")]))

        view = await self.repo.get_concept_neighborhood("Paris")

        self.assertEqual(len(view.nodes), 1)
        self.assertEqual(view.nodes[0].group, "City")

    async def test_relation_type_normalized(self):
        """Test that a free-text relation label is stored as an uppercase edge kind."""
        await self.repo.save_chunk(TChunk(id="c1", content="x", embedding=_vec(1, 0, 0)))
        await self.repo.save_graph(
            "c1", _extraction([("Car", "Concept"), ("Automobile", "Concept")], [("Car", "same as", "Automobile")])
        )

        view = await self.repo.get_full_graph()

        self.assertEqual([(e.source, e.label, e.target) for e in view.edges], [("Car", "SAME_AS", "Automobile")])

    async def test_relation_with_unknown_endpoint_or_empty_kind_skipped(self):
        """Test that relations are only stored between known entities with a non-empty kind."""
        await self.repo.save_chunk(TChunk(id="c1", content="x", embedding=_vec(1, 0, 0)))
        await self.repo.save_graph(
            "c1",
            _extraction(
                [("A", "Concept"), ("B", "Concept")],
                [("A", "knows", "Ghost"), ("A", "", "B"), ("A", "knows", "B"), ("A", "knows", "B")],
            ),
        )

        view = await self.repo.get_full_graph()

        self.assertEqual([(e.source, e.label, e.target) for e in view.edges], [("A", "KNOWS", "B")])

    async def test_duplicate_chunk_id_rejected(self):
        """Test that a chunk id can only be saved once."""
        await self.repo.save_chunk(TChunk(id="c1", content="x", embedding=_vec(1, 0, 0)))

        with self.assertRaises(DatabaseError):
            await self.repo.save_chunk(TChunk(id="c1", content="y", embedding=_vec(0, 1, 0)))

    async def test_failed_chunk_write_leaves_no_trace(self):
        """Test that a chunk whose write to disk fails is rolled back in memory."""
        with tempfile.TemporaryDirectory() as tmp:
            repo = IGraphRepository(config=IGraphRepositoryConfig(working_dir=tmp))
            with patch.object(ig.Graph, "write_picklez", side_effect=OSError("disk full")):
                with self.assertRaises(DatabaseError):
                    await repo.save_chunk(TChunk(id="c1", content="x", embedding=_vec(1, 0, 0)))

            self.assertEqual(repo._chunks, {})
            self.assertEqual(repo._chunk_order, [])
            self.assertEqual(repo._graph.vcount(), 0)
            self.assertIsNone(repo._embedding_dim)

            await repo.save_chunk(TChunk(id="c1", content="x", embedding=_vec(1, 0)))
            contexts = await repo.find_hybrid_context(_vec(1, 0), 3)
            self.assertEqual([c.chunk_id for c in contexts], ["c1"])

    async def test_dimension_mismatch_rejected(self):
        """Test that embeddings must have the indexed dimension."""
        with self.assertRaises(DatabaseError):
            await self.repo.save_chunk(TChunk(id="c1", content="x", embedding=_vec(1, 0)))

        await self.repo.save_chunk(TChunk(id="ok", content="x", embedding=_vec(1, 0, 0)))
        with self.assertRaises(DatabaseError):
            await self.repo.find_hybrid_context(_vec(1, 0, 0, 0), 3)

    async def test_create_indexes_cannot_change_dimension_of_stored_chunks(self):
        """Test that the index dimension is fixed once chunks exist."""
        await self.repo.save_chunk(TChunk(id="c1", content="x", embedding=_vec(1, 0, 0)))

        await self.repo.create_indexes(3)
        with self.assertRaises(DatabaseError):
            await self.repo.create_indexes(5)

    async def test_inferred_relations(self):
        """Test that inferred relations get the INFERRED_ prefix and skip unknown entities."""
        await self.repo.save_chunk(TChunk(id="c1", content="x", embedding=_vec(1, 0, 0)))
        await self.repo.save_graph("c1", _extraction([("A", "Concept"), ("C", "Concept")]))

        await self.repo.save_inferred_relations(
            [
                TInferredRelation(source="A", target="C", relation="leads to", reasoning="transitivity"),
                TInferredRelation(source="A", target="Nowhere", relation="leads to"),
            ]
        )

        context = await self.repo.get_graph_context_for_reasoning()
        self.assertEqual(context, "(A) -[INFERRED_LEADS_TO]-> (C)\n")
        edge = self.repo._graph.es[self.repo._graph.get_eid(self.repo._entities["A"], self.repo._entities["C"])]
        self.assertTrue(edge["is_ai_generated"])
        self.assertEqual(edge["reasoning"], "transitivity")

    async def test_save_graph_for_missing_chunk_still_merges_entities(self):
        """Test that entities and relations are stored even when the chunk is unknown."""
        await self.repo.save_graph("missing", _extraction([("A", "Concept"), ("B", "Concept")], [("A", "x", "B")]))

        view = await self.repo.get_full_graph()

        self.assertEqual(len(view.edges), 1)
        self.assertEqual(await self.repo.find_hybrid_context(_vec(1, 0, 0), 3), [])


class TestIGraphRepositoryReads(unittest.IsolatedAsyncioTestCase):
    """Test suite for retrieval, reasoning context and views."""

    async def asyncSetUp(self):
        self.repo = IGraphRepository()
        await self.repo.create_indexes(3)

    async def test_hybrid_top_k_with_entities(self):
        """Test that the most similar chunks come first with their deduplicated entities."""
        vectors = {
            "c1": _vec(1, 0, 0),
            "c2": _vec(0.9, 0.1, 0),
            "c3": _vec(0, 1, 0),
            "c4": _vec(0, 0, 1),
            "c5": _vec(0.7, 0.7, 0),
        }
        for chunk_id, vector in vectors.items():
            await self.repo.save_chunk(TChunk(id=chunk_id, content=f"text {chunk_id}", embedding=vector))
        await self.repo.save_graph("c1", _extraction([("Paris", "City"), ("France", "Country"), ("Paris", "City")]))
        await self.repo.save_graph("c2", _extraction([("Lyon", "City")]))

        contexts = await self.repo.find_hybrid_context(_vec(1, 0, 0), 3)

        self.assertEqual([c.chunk_id for c in contexts], ["c1", "c2", "c5"])
        self.assertEqual(contexts[0].entities, ["France", "Paris"])
        self.assertEqual(contexts[1].entities, ["Lyon"])
        self.assertEqual(contexts[2].entities, [])
        self.assertEqual(contexts[0].content, "text c1")

    async def test_hybrid_limits(self):
        """Test that a non-positive limit or an empty index returns nothing."""
        self.assertEqual(await self.repo.find_hybrid_context(_vec(1, 0, 0), 3), [])
        await self.repo.save_chunk(TChunk(id="c1", content="x", embedding=_vec(1, 0, 0)))
        self.assertEqual(await self.repo.find_hybrid_context(_vec(1, 0, 0), 0), [])
        self.assertEqual(len(await self.repo.find_hybrid_context(_vec(1, 0, 0), 10)), 1)

    async def test_reasoning_context_empty_graph(self):
        """Test the sentinel returned when there is no entity relation."""
        self.assertEqual(await self.repo.get_graph_context_for_reasoning(), EMPTY_GRAPH_SENTINEL)

    async def test_reasoning_context_ranked_by_degree(self):
        """Test that relations around the best-connected entities are listed first."""
        await self.repo.save_graph(
            "none",
            _extraction(
                [("Hub", "Concept"), ("A", "Concept"), ("B", "Concept"), ("X", "Concept"), ("Y", "Concept")],
                [("X", "rel", "Y"), ("Hub", "rel", "A"), ("Hub", "rel", "B")],
            ),
        )

        context = await self.repo.get_graph_context_for_reasoning(limit=2)

        self.assertEqual(context, "(Hub) -[REL]-> (A)\n(Hub) -[REL]-> (B)\n")

    async def test_mentions_not_in_entity_views(self):
        """Test that chunk links never appear in the graph views or reasoning context."""
        await self.repo.save_chunk(TChunk(id="c1", content="x", embedding=_vec(1, 0, 0)))
        await self.repo.save_graph("c1", _extraction([("A", "Concept")]))

        self.assertEqual((await self.repo.get_full_graph()).edges, [])
        self.assertEqual(await self.repo.get_graph_context_for_reasoning(), EMPTY_GRAPH_SENTINEL)

    async def test_concept_neighborhood(self):
        """Test edges in both directions around a concept, with sorted unique nodes."""
        await self.repo.save_graph(
            "none",
            _extraction(
                [("Paris", "City"), ("France", "Country"), ("Seine", "River"), ("Other", "Concept")],
                [("Paris", "capital of", "France"), ("Seine", "flows through", "Paris"), ("Other", "x", "France")],
            ),
        )

        view = await self.repo.get_concept_neighborhood("Paris")

        self.assertEqual([n.id for n in view.nodes], ["France", "Paris", "Seine"])
        self.assertEqual(
            sorted((e.source, e.label, e.target) for e in view.edges),
            [("Paris", "CAPITAL_OF", "France"), ("Seine", "FLOWS_THROUGH", "Paris")],
        )

    async def test_concept_neighborhood_isolated_and_unknown(self):
        """Test a lone concept yields only its node and an unknown one yields nothing."""
        await self.repo.save_graph("none", _extraction([("Alone", "Concept")]))

        alone = await self.repo.get_concept_neighborhood("Alone")
        unknown = await self.repo.get_concept_neighborhood("Nobody")

        self.assertEqual([n.id for n in alone.nodes], ["Alone"])
        self.assertEqual(alone.edges, [])
        self.assertEqual(unknown.nodes, [])

    async def test_full_graph_to_dict(self):
        """Test the visualization dictionary uses from/to keys."""
        await self.repo.save_graph("none", _extraction([("A", "Person"), ("B", "Concept")], [("A", "likes", "B")]))

        data = (await self.repo.get_full_graph()).to_dict()

        self.assertEqual(data["edges"], [{"from": "A", "to": "B", "label": "LIKES"}])
        self.assertEqual({n["id"]: n["group"] for n in data["nodes"]}, {"A": "Person", "B": "Concept"})

    async def test_reset_database(self):
        """Test that reset removes every chunk, entity and relation."""
        await self.repo.save_chunk(TChunk(id="c1", content="x", embedding=_vec(1, 0, 0)))
        await self.repo.save_graph("c1", _extraction([("A", "Concept"), ("B", "Concept")], [("A", "x", "B")]))

        await self.repo.reset_database()

        self.assertEqual(await self.repo.find_hybrid_context(_vec(1, 0, 0), 3), [])
        self.assertEqual((await self.repo.get_full_graph()).nodes, [])
        await self.repo.save_chunk(TChunk(id="c1", content="again", embedding=_vec(1, 0, 0)))


class TestIGraphRepositoryPersistence(unittest.IsolatedAsyncioTestCase):
    """Test suite for the picklez file."""

    async def test_round_trip_through_disk(self):
        """Test that a new repository on the same directory sees the stored graph."""
        with tempfile.TemporaryDirectory() as tmp:
            config = IGraphRepositoryConfig(working_dir=tmp)
            repo = IGraphRepository(config=config)
            await repo.create_indexes(3)
            await repo.save_chunk(TChunk(id="c1", content="Paris text", embedding=_vec(1, 0, 0)))
            await repo.save_graph("c1", _extraction([("Paris", "City"), ("France", "Country")], [("Paris", "in", "France")]))
            await repo.close()

            self.assertTrue(os.path.exists(os.path.join(tmp, "graph.picklez")))

            reloaded = IGraphRepository(config=config)
            contexts = await reloaded.find_hybrid_context(_vec(1, 0, 0), 1)
            view = await reloaded.get_full_graph()

            self.assertEqual(contexts[0].chunk_id, "c1")
            self.assertEqual(contexts[0].entities, ["France", "Paris"])
            self.assertEqual([(e.source, e.label, e.target) for e in view.edges], [("Paris", "IN", "France")])
            with self.assertRaises(DatabaseError):
                await reloaded.save_chunk(TChunk(id="c1", content="dup", embedding=_vec(0, 1, 0)))


if __name__ == "__main__":
    unittest.main()
