"""OpenAI client for financial document extraction."""

import base64
import json
import logging

import httpx
from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from ..exceptions import ExtractionError
from ..models import Account, CandidateRecord, Category

logger = logging.getLogger(__name__)

FALLBACK_CATEGORY = "Other"

SYSTEM_PROMPT = """You extract transactions from financial documents such as bank statements, card statements and receipts.

Your response must be a JSON object with a single key "transactions" holding an array. Each element has:
- date: the transaction date as YYYY-MM-DD. If the year is missing, assume the current year.
- amount: the amount as a positive number
- originalDescription: the description exactly as printed
- enhancedDescription: a clean, human-readable label (e.g. "PAYPAL *SPOTIFY" -> "Spotify Subscription")
- category: strictly one of the allowed categories, or "Other" if unsure
- isExpense: true for debits, false for credits
- tags: 1-3 short tags describing the merchant or context
- confidence: 0-100, your certainty about this row. Lower it when the text is blurry, ambiguous or the merchant had to be guessed."""


class DocumentExtractor:
    """GPT-based extraction of candidate transactions from documents."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 60.0):
        """Initialize the extractor."""
        self.client = OpenAI(
            api_key=api_key,
            http_client=httpx.Client(timeout=timeout),
            max_retries=2,
        )
        self.model = model

    def close(self):
        """Close the underlying HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def _document_content(
        self, content: str | bytes, mime_type: str, filename: str
    ) -> list[dict]:
        """Build the user message parts for text, image or PDF input."""
        if mime_type == "text/plain":
            text = content.decode("utf-8") if isinstance(content, bytes) else content
            return [{"type": "text", "text": f"DATA TO ANALYZE:\n{text}"}]

        raw = content.encode("utf-8") if isinstance(content, str) else content
        data_url = f"data:{mime_type};base64,{base64.b64encode(raw).decode('ascii')}"

        if mime_type.startswith("image/"):
            return [{"type": "image_url", "image_url": {"url": data_url}}]
        if mime_type == "application/pdf":
            return [{"type": "file", "file": {"filename": filename, "file_data": data_url}}]

        raise ExtractionError(f"Unsupported document type: {mime_type}")

    def extract(
        self,
        content: str | bytes,
        mime_type: str,
        categories: list[Category],
        account: Account | None = None,
        filename: str = "document",
    ) -> list[CandidateRecord]:
        """
        Extract candidate transactions from a document.

        Args:
            content: Raw text, or file bytes for images and PDFs
            mime_type: 'text/plain', 'image/jpeg', 'application/pdf', ...
            categories: Allowed categories for classification
            account: Account the document belongs to, if known
            filename: Original filename, passed along for PDFs

        Returns:
            Candidate records ready for reconciliation

        Raises:
            ExtractionError: If the request fails or the response is unusable
        """
        category_names = [cat.name for cat in categories]
        allowed = ", ".join(category_names)

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": f"Allowed categories: [{allowed}]"},
                    *self._document_content(content, mime_type, filename),
                ],
            },
        ]

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                temperature=0,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            logger.error(f"Document extraction request failed: {e}")
            raise ExtractionError(
                "Failed to analyze the document. Please try again."
            ) from e

        raw_text = response.choices[0].message.content or "{}"
        try:
            payload = json.loads(raw_text)
            rows = payload.get("transactions", []) if isinstance(payload, dict) else payload
            if not isinstance(rows, list):
                raise ValueError("'transactions' is not a list")
            records = [CandidateRecord.model_validate(row) for row in rows]
        except (ValueError, ValidationError) as e:
            logger.error(f"Unparseable extraction output: {e}")
            raise ExtractionError("The document analysis returned unreadable data.") from e

        default_source = "Text Paste" if mime_type == "text/plain" else "File Upload"
        for record in records:
            if record.category not in category_names:
                if record.category:
                    logger.info(
                        f"Relabelling unknown category {record.category!r} as {FALLBACK_CATEGORY}"
                    )
                record.category = FALLBACK_CATEGORY
            record.tags = record.tags or []
            record.source = account.name if account else default_source
            record.account_id = account.id if account else None

        logger.info(f"Extracted {len(records)} candidate transactions ({mime_type})")
        return records

    def suggest_category(self, description: str, categories: list[Category]) -> str:
        """
        Suggest the best category for a single description.

        Falls back to "Other" when the model answers with anything that is
        not an allowed category or the request fails.
        """
        category_names = [cat.name for cat in categories]
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": (
                            f'Best category for transaction "{description}"? '
                            f"Choose one from: {', '.join(category_names)}. "
                            f"Return only the category name."
                        ),
                    }
                ],
                temperature=0,
            )
        except OpenAIError as e:
            logger.error(f"Category suggestion failed for {description!r}: {e}")
            return FALLBACK_CATEGORY

        answer = (response.choices[0].message.content or "").strip()
        return answer if answer in category_names else FALLBACK_CATEGORY
