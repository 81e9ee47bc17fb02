"""
L0 Data — fixed paths, thresholds and host command names.

Pure data, no logic.  Everything the compiler and resolver need to
know about the host layout lives here.
"""

from __future__ import annotations

TOOL_NAME = "rootpatch"

# ── Volume layout ──────────────────────────────────────────────

# macOS major version from which the system volume is sealed and must
# be mounted privately instead of remounted in place.
SEALED_OS_THRESHOLD = 11

PRIVATE_MOUNT_POINT = "/System/Volumes/Update/mnt1"
LEGACY_MOUNT_PATH = "/"

# Key present in `diskutil info -plist /` when "/" is an APFS snapshot.
SNAPSHOT_PLIST_KEY = "APFSSnapshot"
DEVICE_IDENTIFIER_KEY = "DeviceIdentifier"

# ── Destination directories (relative to the mount path) ───────

SYSTEM_EXTENSIONS_DIR = "/System/Library/Extensions"
LEGACY_EXTENSIONS_DIR = "/Library/Extensions"
FRAMEWORKS_DIR = "/System/Library/Frameworks"
PRIVATE_FRAMEWORKS_DIR = "/System/Library/PrivateFrameworks"

FRAMEWORK_EXTENSION = ".framework"

# ── KDK ────────────────────────────────────────────────────────

KDK_DIR = "/Library/Developer/KDKs"
KDK_EXTENSION = ".kdk"
KDK_NAME_MARKER = "KDK"
KDK_DOWNLOAD_URL = "https://github.com/dortania/KdkSupportPkg/releases"

KDK_SYSTEM_SUBTREE = "System"
KDK_EXTENSIONS_SUBTREE = "System/Library/Extensions"

# Present on the mounted volume once a KDK merge has landed.
MERGE_SENTINEL = "System/Library/Extensions/System.kext/PlugIns/Libkern.kext/Libkern"

# ── Host commands ──────────────────────────────────────────────

DISKUTIL = "diskutil"
SW_VERS = "sw_vers"
MOUNT = "mount"
UMOUNT = "umount"
MKDIR = "mkdir"
RSYNC = "rsync"
KMUTIL = "kmutil"
BLESS = "bless"
TEST = "test"
OSASCRIPT = "osascript"

RSYNC_FLAGS = ("-r", "-i", "-a")

RESTART_APPLESCRIPT = 'tell application "System Events" to restart'

# ── Progress heartbeat ─────────────────────────────────────────

PROGRESS_INTERVAL_S = 2.0
PROGRESS_STEP = 0.05
PROGRESS_CAP = 0.95
PROGRESS_GRACE_S = 3.0

# ── Event log ──────────────────────────────────────────────────

EVENT_LOG_CAPACITY = 100
