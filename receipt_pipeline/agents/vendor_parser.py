"""
Vendor-Specific Parsing Agent.

This module provides the VendorParsingAgent class that turns recognized
receipt text into a structured record through the text-understanding
client, using a vendor-tailored prompt when the registry names one.

Processing steps:
    1. Select the prompt (vendor template or enhanced generic)
    2. Complete through TextUnderstandingClient
    3. Apply vendor post-processing (bulk pricing, SKU codes)
    4. Coerce loosely-typed JSON into ExtractedReceiptData
    5. Assess parse quality

Author: ML Engineering Team
"""

import re
import time
from datetime import date
from typing import Any, Dict, List, Optional

from receipt_pipeline.agents.llm_client import TextUnderstandingClient
from receipt_pipeline.agents.prompts import build_vendor_prompt
from receipt_pipeline.agents.quality import assess_parse_quality
from receipt_pipeline.models.agent_result import AgentResult
from receipt_pipeline.models.receipt import ExtractedReceiptData, LineItem
from receipt_pipeline.models.vendor import VendorDetectionResult, VendorParsingResult, VendorType
from receipt_pipeline.parser.normalizers import DateNormalizer
from receipt_pipeline.utils.exceptions import MalformedResponse, ReceiptPipelineError, ValidationFailure
from receipt_pipeline.utils.helpers import safe_float
from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.vendors.registry import VendorPattern, get_vendor_pattern

# Initialize module logger
logger = get_logger(__name__)

AGENT_NAME = "vendor_parsing"
DEFAULT_CONFIDENCE = 75.0

BULK_IN_TEXT_RE = re.compile(
    r'(?P<quantity>\d+)\s+AT\s+\$?[\d.]+\s+FOR\s+\$?(?P<total_price>\d+(?:\.\d{1,2})?)',
    re.IGNORECASE
)


class VendorParsingAgent:
    """
    LLM-backed receipt parser with vendor-specific prompts.

    Attributes:
        client: Text-understanding client
        date_normalizer: Date parser used during coercion

    Example:
        >>> agent = VendorParsingAgent(TextUnderstandingClient())
        >>> result = asyncio.run(agent.parse(raw_text, detection))
        >>> result.data.parse_quality.overall_score
        91.5
    """

    def __init__(self, client: TextUnderstandingClient) -> None:
        self.client = client
        self.date_normalizer = DateNormalizer()

    async def parse(
        self,
        raw_text: str,
        detection: VendorDetectionResult,
        prompt: Optional[str] = None,
        image=None
    ) -> AgentResult[VendorParsingResult]:
        """
        Parse receipt text into a structured record.

        Args:
            raw_text: Recognized receipt text.
            detection: Vendor detection outcome.
            prompt: Prebuilt prompt; built from the vendor template when None.
            image: Optional receipt image passed to the client.

        Returns:
            AgentResult wrapping a VendorParsingResult. ProviderUnavailable,
            ProviderTimeout, MalformedResponse and ValidationFailure come
            back as failed results with confidence 0.
        """
        start_time = time.time()
        cost = 0.0
        completion = None

        pattern = get_vendor_pattern(detection.vendor_type)
        template_key = pattern.template if pattern is not None else None
        strategy = 'vendor_specific' if template_key else 'generic_enhanced'

        try:
            # Step 1: Prompt
            if prompt is None:
                prompt = build_vendor_prompt(raw_text, detection, template_key)

            # Step 2: Completion
            completion = await self.client.complete(prompt, image)
            cost = completion.cost
            completion.raise_for_error()

            # Step 3: Vendor post-processing
            raw_items = completion.structured_json.get('lineItems') or []
            items = self.apply_item_rules(raw_items if isinstance(raw_items, list) else [], pattern)

            # Step 4: Coercion
            data = self.coerce(completion.structured_json, items)

            # Step 5: Quality
            quality = assess_parse_quality(data, detection.confidence)

        except ReceiptPipelineError as e:
            logger.warning(f"Vendor parsing failed ({type(e).__name__}): {e}")
            return AgentResult.failure(
                AGENT_NAME, e, start_time, cost=cost,
                metadata={'vendorType': detection.vendor_type.value, 'parsingStrategy': strategy}
            )
        except Exception as e:
            # JSON that parsed but does not fit the record
            provider = completion.provider if completion is not None else None
            error = MalformedResponse(provider or "text-understanding", f"{type(e).__name__}: {e}")
            logger.warning(f"Vendor parsing failed: {error}")
            return AgentResult.failure(
                AGENT_NAME, error, start_time, cost=cost,
                metadata={'vendorType': detection.vendor_type.value, 'parsingStrategy': strategy}
            )

        result = VendorParsingResult(
            extracted_data=data,
            parse_quality=quality,
            vendor_specific_fields=self.vendor_specific_fields(data, detection.vendor_type),
            warnings=list(quality.suspicious_patterns),
        )

        logger.info(
            f"Parsed {data.vendor}: total={data.total_amount:.2f}, items={len(data.line_items)}, "
            f"quality={quality.overall_score:.1f}, cost=${cost:.4f}"
        )
        return AgentResult.ok(
            AGENT_NAME,
            result,
            confidence=quality.overall_score,
            started=start_time,
            cost=cost,
            metadata={
                'vendorType': detection.vendor_type.value,
                'parsingStrategy': strategy,
                'llmProvider': completion.provider,
            },
        )

    def apply_item_rules(
        self,
        raw_items: List[Any],
        pattern: Optional[VendorPattern] = None
    ) -> List[Dict[str, Any]]:
        """
        Apply the vendor record's post-processing rules to raw line items.

        With 'bulk_pricing', a "N AT p FOR total" line becomes quantity N
        with total price `total`, and a bulk line with no description of
        its own qualifies the item before it. With 'sku_extraction', the
        record's SKU pattern fills missing SKUs from the description.
        Vendors without a record get the items back unchanged.
        """
        fold_bulk = pattern is not None and pattern.handles('bulk_pricing')
        sku_pattern = pattern.sku_pattern if pattern is not None and pattern.handles('sku_extraction') else None

        items: List[Dict[str, Any]] = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                continue
            item = dict(raw)
            description = str(item.get('description') or '')

            bulk = BULK_IN_TEXT_RE.search(description) if fold_bulk else None
            if bulk:
                quantity = int(bulk.group('quantity'))
                total_price = float(bulk.group('total_price'))
                remainder = BULK_IN_TEXT_RE.sub('', description).strip(' -')
                target = item if remainder or not items else items[-1]
                if quantity > 0:
                    target['quantity'] = quantity
                    target['totalPrice'] = total_price
                    target['unitPrice'] = total_price / quantity
                vendor_data = _vendor_data(target)
                vendor_data.update({'bulkPricing': True, 'originalDescription': description})
                target['vendorSpecificData'] = vendor_data
                if target is not item:
                    continue
                item['description'] = remainder

            if sku_pattern is not None and not item.get('sku'):
                code = sku_pattern.search(description)
                if code:
                    item['sku'] = code.group(1)
                    vendor_data = _vendor_data(item)
                    vendor_data['hasSkuCode'] = True
                    item['vendorSpecificData'] = vendor_data

            items.append(item)
        return items

    def coerce(self, raw: Dict[str, Any], items: List[Dict[str, Any]]) -> ExtractedReceiptData:
        """
        Coerce loosely-typed JSON into a record, applying defaults.

        Raises:
            ValidationFailure: If both vendor and total are missing.
        """
        vendor = str(raw.get('vendor') or '').strip() or "Unknown"
        total = safe_float(raw.get('totalAmount', raw.get('total_amount')))

        if vendor == "Unknown" and total <= 0:
            raise ValidationFailure(['vendor', 'totalAmount'])

        raw_date = raw.get('date')
        parsed_date = self.date_normalizer.normalize(str(raw_date)) if raw_date else None

        raw_confidence = raw.get('confidence')
        confidence = safe_float(raw_confidence, DEFAULT_CONFIDENCE) if raw_confidence is not None else DEFAULT_CONFIDENCE

        line_items = []
        for index, item in enumerate(items):
            line_item = LineItem.from_dict(item, index)
            line_items.append(line_item.repaired())

        return ExtractedReceiptData(
            vendor=vendor,
            date=parsed_date or date.today(),
            total_amount=max(0.0, total),
            subtotal=max(0.0, safe_float(raw.get('subtotal'))),
            tax=max(0.0, safe_float(raw.get('tax'))),
            currency=str(raw.get('currency') or "USD"),
            line_items=line_items,
            category=str(raw.get('category') or "Other"),
            confidence=min(100.0, max(0.0, confidence)),
            notes=raw.get('notes'),
            receipt_number=raw.get('receiptNumber') or None,
            payment_method=raw.get('paymentMethod') or None,
        )

    @staticmethod
    def vendor_specific_fields(data: ExtractedReceiptData, vendor_type: VendorType) -> Dict[str, Any]:
        return {
            'vendorType': vendor_type.value,
            'bulkItemsCount': sum(
                1 for item in data.line_items if item.vendor_specific_data.get('bulkPricing')
            ),
            'skuItemsCount': sum(1 for item in data.line_items if item.sku),
        }


def _vendor_data(item: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of an item's vendorSpecificData, ignoring non-dict values."""
    value = item.get('vendorSpecificData')
    return dict(value) if isinstance(value, dict) else {}
