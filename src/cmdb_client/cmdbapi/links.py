"""Parser for RFC 5988 style ``Link`` headers.

Only the parts the CMDB API emits are understood: a ``<url>`` followed by a
``rel="name"`` parameter. Extra parameters after the relation are ignored.
"""

import re

_URL_RE = re.compile(r"<(.*)>")
_REL_RE = re.compile(r'rel="(.*)"')


class LinkHeaderParseError(ValueError):
    """Raised when a Link header segment is not ``<url>; rel="name"``."""


def parse_link_header(header: str | None) -> dict[str, str]:
    """Parse a Link header into a mapping of relation name to URL.

    Args:
        header: Raw header value, e.g.
            ``<https://host/items?page=2>; rel="next", <...>; rel="last"``.

    Returns:
        Mapping of relation name to URL. Empty when the header is absent.
        A relation named twice keeps the last URL.

    Raises:
        LinkHeaderParseError: If a segment has no ``;`` separator.
    """
    links: dict[str, str] = {}
    if not header:
        return links

    for part in header.split(","):
        section = part.split(";")
        if len(section) < 2:  # noqa: PLR2004
            msg = "section could not be split on ';'"
            raise LinkHeaderParseError(msg)

        url = _URL_RE.sub(r"\1", section[0], count=1).strip()
        name = _REL_RE.sub(r"\1", section[1], count=1).strip()
        links[name] = url
    return links
