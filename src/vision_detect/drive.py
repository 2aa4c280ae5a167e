"""Google Drive folder discovery.

Lists the files of a public folder through the embedded folder view, which
needs no API credentials. Private folders, or folders whose embedded view
exposes no file links, yield an empty list.
"""

import re

import httpx

EMBEDDED_VIEW_URL = "https://drive.google.com/embeddedfolderview?id={folder_id}"

_FOLDER_PATTERNS = (
    re.compile(r"drive\.google\.com/drive/folders/([a-zA-Z0-9_-]+)"),
    re.compile(r"drive\.google\.com/drive/u/\d+/folders/([a-zA-Z0-9_-]+)"),
    re.compile(r"folders/([a-zA-Z0-9_-]+)"),
)
_BARE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_FILE_LINK_RE = re.compile(r"/file/d/([^/\"'?]+)/")
_FILE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{25,}$")


def extract_folder_id(folder_url: str) -> str:
    """Folder id from a folder URL, or the input itself if it already is an id.

    Raises:
        ValueError: no folder id can be found
    """
    folder_url = folder_url.strip()
    for pattern in _FOLDER_PATTERNS:
        match = pattern.search(folder_url)
        if match:
            return match.group(1)

    if _BARE_ID_RE.match(folder_url):
        return folder_url

    raise ValueError(f"Could not extract folder ID from URL: {folder_url}")


def file_view_url(file_id: str) -> str:
    return f"https://drive.google.com/file/d/{file_id}/view"


async def list_folder_files(http: httpx.AsyncClient, folder_id: str) -> list[str]:
    """Sharing URLs of the files linked from a folder's embedded view.

    Returns:
        `https://drive.google.com/file/d/<id>/view` links in page order,
        without duplicates. Empty if the view is not accessible.

    Raises:
        httpx.HTTPError: the request itself failed
    """
    response = await http.get(
        EMBEDDED_VIEW_URL.format(folder_id=folder_id), follow_redirects=True
    )
    if not response.is_success:
        return []

    seen: set[str] = set()
    urls = []
    for file_id in _FILE_LINK_RE.findall(response.text):
        if file_id == folder_id or file_id in seen or not _FILE_ID_RE.match(file_id):
            continue
        seen.add(file_id)
        urls.append(file_view_url(file_id))
    return urls
