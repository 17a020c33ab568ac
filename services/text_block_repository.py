"""
Text Block Repository - reusable texts inserted into invoices, quotes and visits.
"""

import logging
from typing import Dict, List, Optional

from database.models import Customer, Invoice, Organization, Quote, TextBlock, User, Visit
from services.base_repository import TenantRepository
from app.utils.formatting import resolve_placeholders
from validators import TEXT_BLOCK_TARGETS, ensure_valid, validate_text_block_payload

logger = logging.getLogger(__name__)

# document type -> (model, label, number attribute, date attribute, total attribute)
DOCUMENTS = {
    'invoice': (Invoice, 'Invoice', 'invoice_number', 'issue_date', 'total_amount'),
    'quote': (Quote, 'Quote', 'quote_number', 'issue_date', 'total_amount'),
    'visit': (Visit, 'Visit', 'visit_number', 'start_time', None),
}


class TextBlockRepository(TenantRepository):
    """Repository for text block database operations."""

    def list_text_blocks(self, applicable_to: str = None) -> List[Dict]:
        blocks = self._scoped(TextBlock).order_by(TextBlock.title).all()
        # applicable_to is a JSON list, filtered here to stay portable across databases
        if applicable_to:
            blocks = [b for b in blocks if applicable_to in (b.applicable_to or [])]
        return [b.to_dict() for b in blocks]

    def get_text_block(self, block_id: str) -> Dict:
        return self._get(TextBlock, block_id, 'Text block').to_dict()

    def create_text_block(self, data: Dict) -> Dict:
        ensure_valid(validate_text_block_payload(data))
        block = TextBlock(
            org_id=self._require_org(),
            title=data['title'].strip(),
            content=data['content'],
            applicable_to=list(data.get('applicable_to') or []),
            created_by_user_id=self.user_id,
        )
        self.session.add(block)
        self.session.flush()
        logger.info(f"Created text block: {block.title}")
        return block.to_dict()

    def update_text_block(self, block_id: str, data: Dict) -> Dict:
        block = self._get(TextBlock, block_id, 'Text block')
        ensure_valid(validate_text_block_payload({**block.to_dict(), **data}))
        if 'title' in data:
            block.title = data['title'].strip()
        if 'content' in data:
            block.content = data['content']
        if 'applicable_to' in data:
            block.applicable_to = list(data['applicable_to'] or [])
        self.session.flush()
        logger.info(f"Updated text block: {block_id}")
        return block.to_dict()

    def delete_text_block(self, block_id: str) -> bool:
        block = self._get(TextBlock, block_id, 'Text block')
        self.session.delete(block)
        self.session.flush()
        logger.info(f"Deleted text block: {block_id}")
        return True

    def placeholder_context(self, document_type: str, document_id=None,
                            customer_id: Optional[int] = None) -> Dict:
        """
        Context for placeholder resolution: customer, document, user and organization.

        The document part exposes number, date and total next to the stored fields.
        """
        context = {'customer': None, 'document': {}, 'user': None, 'organization': None}

        if document_type in DOCUMENTS and document_id:
            model, label, number_attr, date_attr, total_attr = DOCUMENTS[document_type]
            document = self._get(model, document_id, label)
            data = document.to_dict()
            data['number'] = getattr(document, number_attr)
            data['date'] = data.get(date_attr)
            if total_attr:
                data['total'] = getattr(document, total_attr)
            context['document'] = data
            customer_id = customer_id or document.customer_id

        if customer_id:
            customer = self._scoped(Customer).filter(Customer.id == customer_id).first()
            context['customer'] = customer.to_dict() if customer else None
        if self.user_id:
            user = self.session.get(User, self.user_id)
            context['user'] = user.to_dict() if user else None
        if self.organization_id:
            organization = self.session.get(Organization, self.organization_id)
            context['organization'] = organization.to_dict() if organization else None
        return context

    def render_text_block(self, block_id: str, document_type: str, document_id=None,
                          customer_id: Optional[int] = None) -> Dict:
        """Text block content with its placeholders resolved for one document."""
        if document_type not in TEXT_BLOCK_TARGETS:
            document_type = None
        block = self._get(TextBlock, block_id, 'Text block')
        context = self.placeholder_context(document_type, document_id, customer_id)
        return {
            'id': block.id,
            'title': block.title,
            'content': resolve_placeholders(block.content, context),
        }
