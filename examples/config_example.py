from embed_store import StoreConfig, create_embedding_store
from embed_store.core import ChromaConfig, RedisConfig
from embed_store.core.models import Embedding, TextSegment


def example_memory_store():
    config = StoreConfig(backend="memory", dimension=3, missing_id_policy="upsert")

    with create_embedding_store(config) as store:
        store.update("doc-1", Embedding([0.1, 0.2, 0.3]), TextSegment.from_text("upserted"))
        print(store.find_relevant(Embedding([0.1, 0.2, 0.3]), max_results=1))


def example_chroma_client_store():
    """Chroma server in client mode."""
    config = StoreConfig(
        backend="chroma",
        collection_name="my_embeddings",
        chroma=ChromaConfig(mode="client", host="localhost", port=8000),
    )

    with create_embedding_store(config) as store:
        store.add(Embedding([0.1, 0.2, 0.3]), TextSegment.from_text("python"))
        print(store.count())


def example_redis_store():
    """Redis with host/port connection."""
    config = StoreConfig(
        backend="redis",
        collection_name="my_embeddings",
        redis=RedisConfig(host="localhost", port=6379, db=0, prefix="my_app:"),
    )

    with create_embedding_store(config) as store:
        store.add_with_id("a", Embedding([1.0, 0.0]), TextSegment.from_text("first"))
        print(store.find_relevant(Embedding([1.0, 0.0]), max_results=5))


def example_env_based_store():
    """Read configuration from environment variables.

    For example:
    - EMBED_STORE_BACKEND=redis
    - REDIS_URL=redis://localhost:6379/0
    """
    store = create_embedding_store(StoreConfig())
    print(f"{type(store).__name__} holds {store.count()} embeddings")
    store.close()


if __name__ == "__main__":
    example_memory_store()
