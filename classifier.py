# classifier.py
from models import SCOPE_CUSTOM

WECHAT_MESSAGE = "WeChatMessage"
WECHAT_FILE = "WeChatFile"
WECOM_MESSAGE = "WeComMessage"
WECOM_FILE = "WeComFile"
DINGTALK_MESSAGE = "DingTalkMessage"
DINGTALK_FILE = "DingTalkFile"
DOWNLOADS = "Downloads"
DESKTOP = "Desktop"
DOCUMENTS = "Documents"
CUSTOM_SPECIFIED = "CustomSpecified"
OTHER = "Other"

ALL_SOURCES = [
    WECHAT_MESSAGE, WECHAT_FILE, WECOM_MESSAGE, WECOM_FILE,
    DINGTALK_MESSAGE, DINGTALK_FILE, DOWNLOADS, DESKTOP, DOCUMENTS,
    CUSTOM_SPECIFIED, OTHER,
]

# (lowercased fragment, message tag, file tag); first match wins
CHAT_FRAGMENTS = [
    # macOS containers
    ("com.tencent.xinwechat", WECHAT_MESSAGE, WECHAT_FILE),
    ("com.tencent.weworkmac", WECOM_MESSAGE, WECOM_FILE),
    ("com.alibaba.dingtalkmac", DINGTALK_MESSAGE, DINGTALK_FILE),
    # Windows roaming data
    ("/wechat files/", WECHAT_MESSAGE, WECHAT_FILE),
    ("/appdata/roaming/tencent/wechat", WECHAT_MESSAGE, WECHAT_FILE),
    ("/appdata/roaming/wxwork", WECOM_MESSAGE, WECOM_FILE),
    ("/appdata/roaming/dingtalk", DINGTALK_MESSAGE, DINGTALK_FILE),
]

MESSAGE_SEGMENTS = {"msg", "message", "messages", "messagetemp", "chathistory"}

# segment name → tag
USER_FOLDERS = [
    ("downloads", DOWNLOADS),
    ("desktop", DESKTOP),
    ("documents", DOCUMENTS),
]


def _normalize(path):
    return path.replace("\\", "/").lower()


def classify_source(path, scan_scope=None):
    """Map an absolute path to the tag describing where the file came from."""
    if scan_scope == SCOPE_CUSTOM:
        return CUSTOM_SPECIFIED

    p = _normalize(path)
    segments = [s for s in p.split("/") if s]

    for fragment, message_tag, file_tag in CHAT_FRAGMENTS:
        if fragment in p:
            if any(s in MESSAGE_SEGMENTS for s in segments):
                return message_tag
            return file_tag

    for name, tag in USER_FOLDERS:
        if name in segments:
            return tag
    return OTHER
