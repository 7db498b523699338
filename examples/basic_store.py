"""
Example: Basic embedding store usage.

Stores a few text segments in an in-memory store and searches them
with a query embedding.
"""

from embed_store import InMemoryEmbeddingStore, TextSegment
from embed_store.embedding import DefaultEmbeddingModel


def main():
    model = DefaultEmbeddingModel()
    store = InMemoryEmbeddingStore(dimension=model.dimension)

    print("=== Adding text segments ===")

    segments = [
        TextSegment.from_text("Machine learning is a subset of AI...", {"topic": "ml"}),
        TextSegment.from_text("Deep learning uses neural networks...", {"topic": "dl"}),
        TextSegment.from_text("Paris is the capital of France.", {"topic": "geo"}),
    ]
    ids = store.add_all(model.embed_batch([s.text for s in segments]), segments)
    print(f"Stored {len(ids)} segments")

    print("\n=== Searching for similar text ===")

    query = model.embed("tell me about machine learning")
    for match in store.find_relevant(query, max_results=2, min_score=0.6):
        print(f"\nScore: {match.score:.3f}")
        print(f"Topic: {match.embedded.metadata['topic']}")
        print(f"Text: {match.embedded.text[:50]}")

    print("\n=== Updating and deleting ===")

    berlin = TextSegment.from_text("Berlin is the capital of Germany.", {"topic": "geo"})
    store.update(ids[2], model.embed(berlin.text), berlin)
    store.delete(ids[1])
    print(f"Entries left: {store.count()}")


if __name__ == "__main__":
    main()
