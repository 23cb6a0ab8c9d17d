"""
Transcript turn parsing.
"""

import logging
from typing import Dict, List, Optional, Tuple

import regex as re

from models import Speaker, Turn

logger = logging.getLogger(__name__)

AGENT_PREFIX = re.compile(r'^(Chat Bot|Bot|Agent|Support|Assistant):', re.IGNORECASE)
CUSTOMER_PREFIX = re.compile(r'^(Human|User|Customer|Client|Caller):', re.IGNORECASE)
AGENT_KEYWORDS = re.compile(r'bot|agent', re.IGNORECASE)


def split_speaker_line(line: str) -> Optional[Tuple[Speaker, str]]:
    """
    Identify the speaker of one transcript line.

    Args:
        line: A single, already stripped transcript line

    Returns:
        tuple: (speaker, text) or None when the line has no speaker
    """
    if AGENT_PREFIX.match(line):
        speaker = Speaker.AGENT
    elif CUSTOMER_PREFIX.match(line):
        speaker = Speaker.CUSTOMER
    elif ':' in line:
        prefix = line.split(':', 1)[0].strip()
        speaker = Speaker.AGENT if AGENT_KEYWORDS.search(prefix) else Speaker.CUSTOMER
    else:
        return None

    return speaker, line.split(':', 1)[1].strip()


def parse_turns(transcript) -> List[Turn]:
    """
    Split a raw transcript into ordered speaker turns.

    Lines without a speaker and lines whose text is empty are dropped.
    Never raises; invalid input yields an empty list.
    """
    if not transcript or not isinstance(transcript, str):
        logger.warning(f"Invalid transcript provided: {type(transcript).__name__}")
        return []

    turns = []
    for raw_line in transcript.split('\n'):
        line = raw_line.strip()
        if not line:
            continue
        parsed = split_speaker_line(line)
        if parsed is None:
            continue
        speaker, text = parsed
        if text:
            turns.append(Turn(index=len(turns), speaker=speaker, text=text))
    return turns


class TurnParser:
    """Parses transcripts, caching results for the lifetime of one analysis"""

    def __init__(self):
        self._cache: Dict[str, List[Turn]] = {}
        self.logger = logging.getLogger(__name__)

    def parse(self, transcript) -> List[Turn]:
        if isinstance(transcript, str) and transcript in self._cache:
            return self._cache[transcript]

        turns = parse_turns(transcript)
        if isinstance(transcript, str):
            self._cache[transcript] = turns
        self.logger.debug(f"Parsed {len(turns)} turns")
        return turns

    def clear(self):
        self._cache.clear()
