"""
Command Dispatcher
Recognizes bot-call keywords in outgoing text and hands the question to the
Q&A curator without holding up the send path.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from topichat.services.entities import FeedMessage

logger = logging.getLogger(__name__)

TRIGGER_CHARACTER = "/"


@dataclass(frozen=True)
class Classification:
    """Result of matching a text against the configured keywords"""
    is_command: bool
    keyword: Optional[str] = None
    remainder: str = ""


def classify(keywords: Sequence[str], text: str) -> Classification:
    """
    Case-sensitive prefix match of `text` against `keywords`

    The longest matching keyword wins, so "/질문하기" is not read as
    "/질문" followed by "하기" when both are configured.
    """
    for keyword in sorted(keywords, key=len, reverse=True):
        if keyword and text.startswith(keyword):
            return Classification(
                is_command=True,
                keyword=keyword,
                remainder=text[len(keyword):].strip(),
            )
    return Classification(is_command=False)


def suggest(keywords: Sequence[str], text: str) -> List[str]:
    """Keywords matching the partial command typed so far"""
    if not text.startswith(TRIGGER_CHARACTER):
        return []
    partial = text.split(" ", 1)[0].lower()
    return [k for k in keywords if k.lower().startswith(partial)]


def complete(keyword: str) -> str:
    """Input text after picking a suggestion"""
    return f"{keyword} "


def bubble_kind(keywords: Sequence[str], message: FeedMessage) -> str:
    """Display-only classification: deleted, curator, command or normal"""
    if message.is_deleted:
        return "deleted"
    if message.is_curator:
        return "curator"
    if classify(keywords, message.content).is_command:
        return "command"
    return "normal"


class CommandDispatcher:
    """
    Routes command messages to the Q&A curator in the background

    `submit(fn, *args)` schedules work without waiting for it; an executor's
    submit method or FastAPI's BackgroundTasks.add_task both fit.
    `ask(question, room_id)` performs the actual curator call.
    """

    def __init__(
        self,
        keywords: Sequence[str],
        ask: Callable[[str, str], object],
        submit: Callable[..., object],
        on_failure: Optional[Callable[[str, Exception], None]] = None,
    ):
        self.keywords = list(keywords)
        self._ask = ask
        self._submit = submit
        self.on_failure = on_failure

    def classify(self, text: str) -> Classification:
        return classify(self.keywords, text)

    def suggest(self, text: str) -> List[str]:
        return suggest(self.keywords, text)

    def dispatch(self, text: str, room_id: str) -> Classification:
        """Classify and, for a command with a question, schedule the answer"""
        result = self.classify(text)
        if result.is_command and result.remainder:
            logger.info("Dispatching %s question for room %s", result.keyword, room_id)
            self._submit(self._run, result.remainder, str(room_id))
        return result

    def _run(self, question: str, room_id: str):
        try:
            self._ask(question, room_id)
        except Exception as e:
            logger.error("Curator answer failed for room %s: %s", room_id, e)
            if self.on_failure is not None:
                self.on_failure(room_id, e)
