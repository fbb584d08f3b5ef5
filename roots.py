# roots.py
import os
import sys
import ntpath
import posixpath

from models import ChatLocation, SCOPE_CUSTOM

DEFAULT_HOME_DIRS = ["Documents", "Desktop", "Downloads", "Projects", "Work"]

# (app, path below $HOME) for macOS sandboxed containers
MAC_CHAT_DIRS = [
    ("WeChat", "Library/Containers/com.tencent.xinWeChat/Data/Library/Application Support/com.tencent.xinWeChat"),
    ("WeCom", "Library/Containers/com.tencent.WeWorkMac/Data/Library/Application Support/WXWork"),
    ("DingTalk", "Library/Containers/com.alibaba.DingTalkMac/Data/Library/Application Support"),
]

# (app, path below %USERPROFILE%)
WINDOWS_CHAT_DIRS = [
    ("WeChat", ("Documents", "WeChat Files")),
    ("WeChat", ("AppData", "Roaming", "Tencent", "WeChat")),
    ("WeCom", ("AppData", "Roaming", "WXWork")),
    ("DingTalk", ("AppData", "Roaming", "DingTalk")),
]


def _joiner(platform):
    return ntpath.join if platform == "win32" else posixpath.join


def chat_candidates(platform=None, home=None, environ=None):
    """Every chat-app storage directory the platform could have, existing or not."""
    platform = platform or sys.platform
    home = home or os.path.expanduser("~")
    environ = os.environ if environ is None else environ

    if platform == "darwin":
        return [(app, posixpath.join(home, rel)) for app, rel in MAC_CHAT_DIRS]
    if platform == "win32":
        profile = environ.get("USERPROFILE")
        if not profile:
            return []
        return [(app, ntpath.join(profile, *parts)) for app, parts in WINDOWS_CHAT_DIRS]
    return []


def detect_chat_locations(platform=None, home=None, environ=None):
    found = []
    for app, path in chat_candidates(platform, home, environ):
        if os.path.exists(path):
            found.append(ChatLocation(application_name=app, absolute_path=path))
    return found


def default_roots(platform=None, home=None, environ=None):
    platform = platform or sys.platform
    home = home or os.path.expanduser("~")
    join = _joiner(platform)
    roots = [join(home, name) for name in DEFAULT_HOME_DIRS]
    roots.extend(path for _app, path in chat_candidates(platform, home, environ))
    return roots


def resolve_roots(scan_scope, scan_folders, managed_folder, platform=None, home=None, environ=None):
    """
    Build the ordered list of directories a scan walks.

    CUSTOM scope with folders → exactly those folders.
    CUSTOM scope without folders → the project's own folder, never nothing.
    Anything else → home defaults + chat storage dirs + the project's folder.
    Existence is not checked here; missing roots are skipped by the walker.
    """
    if scan_scope == SCOPE_CUSTOM:
        roots = list(scan_folders) if scan_folders else [managed_folder]
    else:
        roots = default_roots(platform, home, environ)
        if managed_folder:
            roots.append(managed_folder)

    seen = set()
    unique = []
    for root in roots:
        if not root or root in seen:
            continue
        seen.add(root)
        unique.append(root)
    return unique
