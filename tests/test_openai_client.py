"""Tests for the OpenAI document extractor."""

import json
from unittest.mock import MagicMock, patch

import pytest
from openai import OpenAIError

from finunify.clients.openai_client import DocumentExtractor
from finunify.exceptions import ExtractionError
from finunify.models import DEFAULT_ACCOUNTS, DEFAULT_CATEGORIES


def completion(content: str) -> MagicMock:
    """Build a fake chat completion response."""
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


@pytest.fixture
def mock_openai():
    """Patch the OpenAI client class."""
    with patch("finunify.clients.openai_client.OpenAI") as openai_class:
        client = MagicMock()
        openai_class.return_value = client
        yield client


@pytest.fixture
def extractor(mock_openai):
    """Create an extractor backed by the mocked client."""
    return DocumentExtractor(api_key="test_key")


class TestExtract:
    """Tests for extract."""

    def test_parses_transactions(self, extractor, mock_openai):
        """JSON rows become candidate records with the text source."""
        mock_openai.chat.completions.create.return_value = completion(
            json.dumps(
                {
                    "transactions": [
                        {
                            "date": "2024-03-01",
                            "amount": 5.25,
                            "originalDescription": "SQ *BLUE BOTTLE",
                            "enhancedDescription": "Blue Bottle Coffee",
                            "category": "Dining Out",
                            "isExpense": True,
                            "tags": ["coffee"],
                            "confidence": 92,
                        }
                    ]
                }
            )
        )

        records = extractor.extract("03/01 SQ *BLUE BOTTLE 5.25", "text/plain", DEFAULT_CATEGORIES)

        assert len(records) == 1
        record = records[0]
        assert record.original_description == "SQ *BLUE BOTTLE"
        assert record.category == "Dining Out"
        assert record.source == "Text Paste"
        assert record.account_id is None

        kwargs = mock_openai.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "Groceries" in kwargs["messages"][1]["content"][0]["text"]

    def test_unknown_category_becomes_other(self, extractor, mock_openai):
        """Categories outside the allowed list are relabelled."""
        mock_openai.chat.completions.create.return_value = completion(
            json.dumps(
                {"transactions": [{"date": "2024-03-01", "amount": 3, "originalDescription": "X", "category": "Snacks"}]}
            )
        )
        records = extractor.extract("x", "text/plain", DEFAULT_CATEGORIES)
        assert records[0].category == "Other"

    def test_account_stamps_source(self, extractor, mock_openai):
        """Choosing an account links records to it."""
        mock_openai.chat.completions.create.return_value = completion(
            json.dumps({"transactions": [{"date": "2024-03-01", "amount": 3, "originalDescription": "X"}]})
        )
        account = DEFAULT_ACCOUNTS[0]

        records = extractor.extract(b"\x89PNG", "image/png", DEFAULT_CATEGORIES, account=account)

        assert records[0].source == "Chase Sapphire"
        assert records[0].account_id == "acc-1"
        parts = mock_openai.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert parts[1]["image_url"]["url"].startswith("data:image/png;base64,")

    def test_pdf_is_sent_as_file(self, extractor, mock_openai):
        """PDFs are attached as a file part."""
        mock_openai.chat.completions.create.return_value = completion('{"transactions": []}')

        records = extractor.extract(b"%PDF-1.4", "application/pdf", DEFAULT_CATEGORIES, filename="may.pdf")

        assert records == []
        parts = mock_openai.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert parts[1]["file"]["filename"] == "may.pdf"

    def test_unsupported_type(self, extractor, mock_openai):
        """Unknown MIME types fail before calling the API."""
        with pytest.raises(ExtractionError):
            extractor.extract(b"PK", "application/zip", DEFAULT_CATEGORIES)
        mock_openai.chat.completions.create.assert_not_called()

    def test_api_failure(self, extractor, mock_openai):
        """API errors surface as ExtractionError."""
        mock_openai.chat.completions.create.side_effect = OpenAIError("rate limited")
        with pytest.raises(ExtractionError):
            extractor.extract("x", "text/plain", DEFAULT_CATEGORIES)

    @pytest.mark.parametrize(
        "content",
        ["not json", '{"transactions": {"a": 1}}', '{"transactions": [{"amount": "abc"}]}'],
    )
    def test_unreadable_output(self, extractor, mock_openai, content):
        """Garbage responses surface as ExtractionError."""
        mock_openai.chat.completions.create.return_value = completion(content)
        with pytest.raises(ExtractionError):
            extractor.extract("x", "text/plain", DEFAULT_CATEGORIES)


class TestSuggestCategory:
    """Tests for suggest_category."""

    def test_valid_answer(self, extractor, mock_openai):
        """An allowed category name is returned as is."""
        mock_openai.chat.completions.create.return_value = completion(" Groceries\n")
        assert extractor.suggest_category("WHOLE FOODS", DEFAULT_CATEGORIES) == "Groceries"

    def test_falls_back_to_other(self, extractor, mock_openai):
        """Anything else falls back to Other."""
        mock_openai.chat.completions.create.return_value = completion("Food")
        assert extractor.suggest_category("WHOLE FOODS", DEFAULT_CATEGORIES) == "Other"

        mock_openai.chat.completions.create.side_effect = OpenAIError("down")
        assert extractor.suggest_category("WHOLE FOODS", DEFAULT_CATEGORIES) == "Other"
