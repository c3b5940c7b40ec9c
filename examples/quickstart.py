"""Build a small knowledge graph, stream an ingestion, ask a question and run a reasoning pass.

Setup Instructions:
    1. Install the package: pip install -e .
    2. Create a .env file with AI_PROVIDER, AI_API_KEY and the model names you want to use
       (add NEO4J_URI, NEO4J_USER and NEO4J_PASS and pass --neo4j to store the graph in Neo4j)
    3. Run: python examples/quickstart.py [--neo4j]
"""

import asyncio
import sys

from dotenv import load_dotenv

from muralla import AIProvider, KnowledgeGraph
from muralla._llm import DefaultAIService
from muralla._storage import Neo4jGraphRepository

# Load environment variables from .env file (contains API keys and credentials)
load_dotenv()

DOCUMENT = """
Ada Lovelace worked with Charles Babbage on the Analytical Engine.
The Analytical Engine was a design for a general-purpose mechanical computer.
Charles Babbage also designed the Difference Engine.
"""


async def main(use_neo4j: bool) -> None:
    graph = KnowledgeGraph(
        working_dir="./examples/ignore/quickstart",
        config=KnowledgeGraph.Config(
            ai_service=DefaultAIService(),
            repository=Neo4jGraphRepository() if use_neo4j else None,
        ),
    )
    await graph.async_setup()

    async for line in graph.ingest_stream(DOCUMENT):
        print(line)

    answer = await graph.async_query("Who worked on the Analytical Engine?")
    print(answer.response)
    for reference in answer.context_used:
        print(" -", reference)

    for relation in await graph.async_reason():
        print(f"({relation.source}) -[{relation.relation}]-> ({relation.target}): {relation.reasoning}")

    # Switch to a local model without restarting
    config = await graph.async_get_config()
    await graph.async_update_config(config.with_changes(provider=AIProvider.OLLAMA, model="llama3"))
    print(f"Now using {(await graph.async_get_config()).model}")

    await graph.async_close()


if __name__ == "__main__":
    asyncio.run(main("--neo4j" in sys.argv))
