from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from curator.engine.models import Candidate

LOW_VOTE_SUGGESTION_THRESHOLD = 7
MAX_PERMLINK_LENGTH = 255
_PERMLINK_INVALID_RE = re.compile(r"[^a-z0-9-]+")

_SUGGESTIONS = (
    "- Contribute more often to get higher and higher rewards. I wish to see you often!\n"
    "- Work on your followers to increase the votes/rewards. "
    "I follow what humans do and my vote is mainly based on that. Good luck!\n"
    "#### Get Noticed!\n"
    "- Did you know project owners can manually vote with their own voting power "
    "or by voting power delegated to their projects? Ask the project owner to review your contributions!\n"
)

_FOOTER = (
    "#### Community-Driven Witness!\n"
    "I am the first and only Steem Community-Driven Witness. "
    '<a href="https://discord.gg/zTrEMqB">Participate on Discord</a>. Lets GROW TOGETHER!\n'
    '- <a href="https://v2.steemconnect.com/sign/account-witness-vote?witness=utopian-io&approve=1">'
    "Vote for my Witness With SteemConnect</a>\n"
    '- <a href="https://v2.steemconnect.com/sign/account-witness-proxy?proxy=utopian-io&approve=1">'
    "Proxy vote to Utopian Witness with SteemConnect</a>\n"
    '- Or vote/proxy on <a href="https://steemit.com/~witnesses">Steemit Witnesses</a>\n'
    "\n**Up-vote this comment to grow my power and help Open Source contributions like this one. "
    "Want to chat? Join me on Discord https://discord.gg/Pc8HG9x**"
)


def build_comment_body(agent_account: str, candidate: Candidate) -> str:
    body = f"### Hey @{candidate.author} I am @{agent_account}. I have just upvoted you!\n"

    if candidate.achievements:
        body += "#### Achievements\n"
        body += "".join(f"- {achievement}\n" for achievement in candidate.achievements)

    if candidate.final_vote is not None and candidate.final_vote <= LOW_VOTE_SUGGESTION_THRESHOLD:
        body += "#### Suggestions\n"
        body += _SUGGESTIONS

    return body + _FOOTER


def comment_metadata(*, tags: str, community: str, app: str) -> dict[str, Any]:
    return {
        "tags": [tag.strip() for tag in tags.split(",") if tag.strip()],
        "community": community,
        "app": app,
    }


def comment_permlink(parent_author: str, parent_permlink: str, now: datetime | None = None) -> str:
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    timestamp = now.strftime("%Y%m%dt%H%M%S") + f"{now.microsecond // 1000:03d}z"
    parent = _PERMLINK_INVALID_RE.sub("", parent_permlink.lower())
    author = _PERMLINK_INVALID_RE.sub("", parent_author.lower().replace(".", "-"))
    permlink = f"re-{author}-{parent}-{timestamp}"
    if len(permlink) > MAX_PERMLINK_LENGTH:
        # Keep the timestamp suffix; it is what makes the permlink unique.
        permlink = permlink[: MAX_PERMLINK_LENGTH - len(timestamp) - 1] + "-" + timestamp
    return permlink
