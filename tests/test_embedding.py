from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np
import pytest
from openai import OpenAIError

from hybrid_search.config import Settings
from hybrid_search.embedding import Embedder, EmbeddingModel, TfidfEmbeddingModel
from hybrid_search.errors import EmbeddingError


def embeddings_response(*items):
    return SimpleNamespace(
        data=[SimpleNamespace(index=index, embedding=vector) for index, vector in items]
    )


def test_embedding_model_orders_by_index():
    client = MagicMock()
    client.embeddings.create.return_value = embeddings_response((1, [0.0, 1.0]), (0, [1.0, 0.0]))
    model = EmbeddingModel("nomic-embed-text", client=client)

    vectors = model.embed_texts(["first", "second"])

    assert vectors == [[1.0, 0.0], [0.0, 1.0]]
    client.embeddings.create.assert_called_once_with(
        model="nomic-embed-text", input=["first", "second"]
    )


def test_embed_single_text():
    client = MagicMock()
    client.embeddings.create.return_value = embeddings_response((0, [0.5, 0.5]))

    assert EmbeddingModel(client=client).embed("holmes") == [0.5, 0.5]


def test_empty_batch_skips_the_api():
    client = MagicMock()

    assert EmbeddingModel(client=client).embed_texts([]) == []
    client.embeddings.create.assert_not_called()


def test_provider_errors_become_embedding_errors():
    client = MagicMock()
    client.embeddings.create.side_effect = OpenAIError("boom")

    with pytest.raises(EmbeddingError):
        EmbeddingModel(client=client).embed("holmes")


def test_short_response_is_an_error():
    client = MagicMock()
    client.embeddings.create.return_value = embeddings_response((0, [1.0]))

    with pytest.raises(EmbeddingError):
        EmbeddingModel(client=client).embed_texts(["a", "b"])


def test_from_settings_uses_model_name():
    settings = Settings(embedding_model="nomic-embed-text", api_key="sk-test")

    model = EmbeddingModel.from_settings(settings)

    assert model.model_name == "nomic-embed-text"
    assert isinstance(model, Embedder)


def test_tfidf_model_embeds_normalised_vectors():
    model = TfidfEmbeddingModel(["holmes played the violin", "watson wrote the notes"])

    vectors = model.embed_texts(["holmes violin", "watson"])

    assert model.dimension == len(vectors[0])
    for vector in vectors:
        assert np.linalg.norm(vector) == pytest.approx(1.0)
    assert isinstance(model, Embedder)


def test_tfidf_unknown_words_give_zero_vector():
    model = TfidfEmbeddingModel(["holmes played the violin"])

    assert not any(model.embed("moriarty"))


def test_tfidf_requires_fit():
    with pytest.raises(EmbeddingError):
        TfidfEmbeddingModel().embed("holmes")


def test_tfidf_fit_on_empty_corpus_fails():
    with pytest.raises(EmbeddingError):
        TfidfEmbeddingModel([])
