"""Ordering of interactive prompts that wait for a human answer."""

import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Optional

_YES = re.compile(r"^y", re.IGNORECASE)


@dataclass
class PendingPrompt:
    """A question waiting to be shown or answered."""

    question: str
    priority: bool = False
    future: "asyncio.Future[str]" = field(
        default_factory=lambda: asyncio.get_running_loop().create_future()
    )


class PromptQueue:
    """
    Two-tier prompt queue with a single live slot.

    - At most one prompt is live (shown and awaiting input) at a time
    - Priority prompts are served before regular prompts
    - A priority prompt preempts a live regular prompt: the regular prompt
      goes back to the front of its tier and is shown again later
    - Prompts within a tier are served first-in first-out

    All access happens on the event loop thread, so no locking is needed.
    """

    def __init__(
        self,
        show: Callable[[str], None],
        logger: Optional[logging.Logger] = None,
    ):
        self._show = show
        self._priority: Deque[PendingPrompt] = deque()
        self._regular: Deque[PendingPrompt] = deque()
        self._current: Optional[PendingPrompt] = None
        self._closed = False
        self.logger = logger or logging.getLogger(__name__)

    @property
    def current(self) -> Optional[PendingPrompt]:
        """The live prompt, if any."""
        return self._current

    @property
    def pending_count(self) -> int:
        """Prompts queued behind the live one."""
        return len(self._priority) + len(self._regular)

    async def ask(self, question: str, priority: bool = False) -> str:
        """
        Queue a question and wait for its answer.

        Args:
            question: Text shown to the user
            priority: Whether to interrupt a live regular prompt

        Returns:
            The raw line the user entered

        Raises:
            EOFError: If the queue has been closed
        """
        if self._closed:
            raise EOFError("No more input")
        prompt = PendingPrompt(question=question, priority=priority)
        self._enqueue(prompt)
        return await prompt.future

    async def confirm(self, prompt_text: str, default_yes: bool = False) -> bool:
        """
        Ask a yes/no question with priority.

        An empty answer selects the default; anything starting with "y" is yes.
        Once input is closed nothing is approved.
        """
        suffix = "(Y/n)" if default_yes else "(y/N)"
        try:
            answer = (await self.ask(f"\n{prompt_text} {suffix} ", priority=True)).strip()
        except EOFError:
            return False
        if self._closed:
            return False
        if not answer:
            return default_yes
        return bool(_YES.match(answer))

    def submit(self, line: str) -> bool:
        """
        Answer the live prompt with a line of input.

        Returns:
            False if no prompt was live and the line was ignored
        """
        prompt = self._current
        if prompt is None:
            self.logger.debug("Ignoring input line: no prompt is waiting")
            return False

        self._current = None
        if not prompt.future.done():
            prompt.future.set_result(line)
        self._show_next()
        return True

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """
        Stop taking input, e.g. when stdin reaches end of file.

        Every waiting prompt is answered with an empty line, so yes/no
        questions fall back to "no"; later calls to ``ask`` raise EOFError.
        """
        self._closed = True
        prompts = list(self._priority) + list(self._regular)
        if self._current is not None:
            prompts.insert(0, self._current)
        self._priority.clear()
        self._regular.clear()
        self._current = None
        for prompt in prompts:
            if not prompt.future.done():
                prompt.future.set_result("")

    def _enqueue(self, prompt: PendingPrompt) -> None:
        current = self._current
        if prompt.priority:
            if current is not None and not current.priority:
                # Demote the live prompt; it is asked again after this one
                self.logger.debug(f"Priority prompt preempts {current.question!r}")
                self._current = None
                current.priority = False
                self._regular.appendleft(current)
            self._priority.append(prompt)
        else:
            self._regular.append(prompt)

        if self._current is None:
            self._show_next()

    def _show_next(self) -> None:
        while self._current is None and (self._priority or self._regular):
            prompt = self._priority.popleft() if self._priority else self._regular.popleft()
            if prompt.future.done():
                # Cancelled while waiting in the queue
                continue
            self._current = prompt
            self._show(prompt.question)
