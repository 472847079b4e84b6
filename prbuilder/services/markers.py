"""Recognition of the commands users write in pull request descriptions and comments."""

import re
from typing import List, Optional

from prbuilder.models.pull_request import make_pr_id

INCLUDE_PR = re.compile(
    r'Include\s+https?://[^/\s]+/(?P<user>[^/\s]+)/(?P<repo>[^/\s]+)/pull/(?P<number>\d+)',
    re.IGNORECASE
)
REBUILD_THIS = re.compile(r'rebuild this', re.IGNORECASE)


def find_included_prs(body: Optional[str]) -> List[str]:
    """Ids of every pull request named by an ``Include <url>`` marker in ``body``, in order."""
    if not body:
        return []
    ids = []
    for match in INCLUDE_PR.finditer(body):
        pr_id = make_pr_id(match.group("user"), match.group("repo"), int(match.group("number")))
        if pr_id not in ids:
            ids.append(pr_id)
    return ids


def requests_rebuild(body: Optional[str]) -> bool:
    return bool(body and REBUILD_THIS.search(body))
