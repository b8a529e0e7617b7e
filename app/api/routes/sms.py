"""
SMS Webhook

Twilio posts inbound texts as a form; the reply goes back as TwiML.
SMS has no client-held snapshot, so each text is its own turn keyed by
the sender's number. A text naming a day and time ("fri 10am") holds that
slot; with an email in the same text it books.
"""

import logging
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Form, Response

from app.core.intelligence.session.models import CHANNEL_SMS, TurnInput
from app.core.scheduling.engine import SchedulingEngine, get_scheduling_engine
from app.core.scheduling.replies import NeedEmailReply, reply_text
from app.core.scheduling.response import Copy

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sms", tags=["SMS"])


def twiml_message(text: str) -> str:
    return f'<?xml version="1.0" encoding="UTF-8"?><Response><Message>{escape(text)}</Message></Response>'


@router.post("/webhook", summary="Inbound SMS")
async def sms_webhook(
    body: str = Form(default="", alias="Body"),
    sender: str = Form(default="", alias="From"),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> Response:
    """Answer one inbound text."""
    response = await engine.process(
        TurnInput(
            session_id=f"sms:{sender}" if sender else None,
            message=body,
            channel=CHANNEL_SMS,
        )
    )

    text = reply_text(response.reply)
    if isinstance(response.reply, NeedEmailReply):
        # Nothing carries the held slot to the next text
        text = f"{text} {Copy.SMS_ONE_TEXT}"
    return Response(content=twiml_message(text), media_type="application/xml")
