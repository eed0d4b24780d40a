"""Prompt text for event extraction."""
from typing import List, Optional

EXTRACTION_PROMPT = """Extract ALL blockchain/crypto/Web3 events from the following content. Be thorough and extract every event you can find.

This is {chunk_label} of the page content.

CRITICAL INSTRUCTIONS FOR EVENT NAMES:
- Extract the ACTUAL EVENT NAME, not promotional text, discounts, or member benefits
- Skip things like "Member Discount", "Member tix", "RSVP", "Register" - these are NOT event names
- If an event spans several days, return one entry per day listed on the page

CRITICAL INSTRUCTIONS FOR RSVP/REGISTRATION:
- event_url should be the main event page/info page
- rsvp_url should be the direct registration/RSVP link (Luma, Eventbrite, ...) if different from event_url

For each event, provide:
- name (required) - the full event name
- description (brief) - what the event is about
- event_type (one of: conference, hackathon, meetup, workshop, summit, party, networking, other)
- event_date (YYYY-MM-DD format, required) - if only month/year is given, use the first day of that month
- start_time (HH:MM 24h format, optional)
- end_time (HH:MM 24h format, optional)
- venue (name of venue, optional)
- city (optional)
- country (optional)
- organizer (optional)
- event_url (link to event page, optional)
- rsvp_url (link to register, optional)
- image_url (URL to event banner/thumbnail image if visible, optional)
- tags (array of relevant tags, optional)
- blockchain_focus (array of blockchain names like 'ethereum', 'solana', 'bitcoin', optional)

{filters}Return ONLY a valid JSON array of events, no other text. Example:
[{{"name": "ETHDenver", "event_type": "hackathon", "event_date": "2026-02-23", "city": "Denver"}}]

Content to analyze:
{content}"""


def filter_instructions(
    event_types: Optional[List[str]] = None,
    blockchain_focus: Optional[List[str]] = None
) -> str:
    """Prompt lines restricting which events the model returns."""
    if event_types:
        lines = [f"Only include events of these types: {', '.join(event_types)}"]
    else:
        lines = ["Include ALL event types found."]
    if blockchain_focus:
        lines.append(f"Only include events focused on: {', '.join(blockchain_focus)}")
    return '\n'.join(lines) + '\n\n'


def build_extraction_prompt(
    content: str,
    chunk_label: str,
    event_types: Optional[List[str]] = None,
    blockchain_focus: Optional[List[str]] = None
) -> str:
    return EXTRACTION_PROMPT.format(
        content=content,
        chunk_label=chunk_label,
        filters=filter_instructions(event_types, blockchain_focus),
    )
