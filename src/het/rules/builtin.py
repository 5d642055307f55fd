"""
Built-in dangerous pattern table.

These checks ship with HET and run before any custom rule, so a custom rule
can never allow something listed here.

Each entry tests either the content or the path extraction of the
invocation (see het.rules.matcher). Tool types that share a concern share a
table: Write, Edit and NotebookEdit use the write-path checks, Glob and
Grep the search-path checks. WebSearch has no built-in checks.
"""

import re
from dataclasses import dataclass
from enum import Enum

from het.schema import Action, ToolType


class Target(str, Enum):
    """Which extraction a pattern is tested against."""

    CONTENT = "content"
    PATH = "path"


@dataclass(frozen=True)
class BuiltinPattern:
    """One built-in check."""

    pattern: re.Pattern[str]
    reason: str
    action: Action
    target: Target = Target.CONTENT


def _content(pattern: str, reason: str, action: Action, flags: int = 0) -> BuiltinPattern:
    return BuiltinPattern(re.compile(pattern, flags), reason, action, Target.CONTENT)


def _path(pattern: str, reason: str, action: Action, flags: int = 0) -> BuiltinPattern:
    return BuiltinPattern(re.compile(pattern, flags), reason, action, Target.PATH)


DENY = Action.DENY
ASK = Action.ASK


BASH_PATTERNS: tuple[BuiltinPattern, ...] = (
    _content(r"rm\s+(-[rf]+\s+)*/($|\s)", "Recursive delete at root", DENY),
    _content(r"rm\s+-rf?\s+~", "Recursive delete in home directory", ASK),
    _content(r">\s*/dev/sd[a-z]", "Direct write to disk device", DENY),
    _content(r"mkfs\.", "Filesystem formatting", DENY),
    _content(r"dd\s+.*of=/dev/", "Direct disk write with dd", DENY),
    _content(r"chmod\s+777", "Overly permissive file permissions", ASK),
    _content(r"chmod\s+\+s", "Setting SUID bit", DENY),
    _content(r":\(\)\s*\{\s*:\|:&\s*\};\s*:", "Fork bomb detected", DENY),
    _content(r"git\s+push.*--force", "Force push can overwrite remote history", ASK),
    _content(r"git\s+reset\s+--hard", "Hard reset can lose uncommitted changes", ASK),
    _content(r"curl.*\|\s*(ba)?sh", "Piping remote script to shell", ASK),
    _content(r"wget.*\|\s*(ba)?sh", "Piping remote script to shell", ASK),
    _content(r"eval\s*\$\(", "Eval with command substitution", ASK),
    _content(r"base64\s+-d.*\|\s*(ba)?sh", "Executing base64-encoded commands", DENY),
    _content(r"nc\s+-[el]", "Netcat listener (potential backdoor)", DENY),
    _content(r"ssh-keygen.*-f.*/root", "Generating SSH keys for root", DENY),
)

POWERSHELL_PATTERNS: tuple[BuiltinPattern, ...] = (
    # Destructive file operations
    _content(r"Remove-Item\s+.*-Recurse.*[\\/]($|\s)", "Recursive delete at root", DENY, re.I),
    _content(r"Remove-Item\s+.*-Recurse.*\$env:USERPROFILE", "Recursive delete in user profile", ASK, re.I),
    _content(r"Remove-Item\s+.*-Recurse.*\$HOME", "Recursive delete in home directory", ASK, re.I),
    _content(r"rm\s+-r\s+-fo", "Force recursive delete", ASK, re.I),
    _content(r"del\s+.*/s\s+.*/q", "Silent recursive delete", ASK, re.I),
    # Disks
    _content(r"Format-Volume", "Disk formatting", DENY, re.I),
    _content(r"Clear-Disk", "Disk clearing", DENY, re.I),
    _content(r"Initialize-Disk", "Disk initialization", DENY, re.I),
    # Execution policy
    _content(r"Set-ExecutionPolicy\s+.*Bypass", "Execution policy bypass", DENY, re.I),
    _content(r"Set-ExecutionPolicy\s+.*Unrestricted", "Unrestricted execution policy", ASK, re.I),
    _content(r"-ExecutionPolicy\s+Bypass", "Bypassing execution policy", ASK, re.I),
    # Remote script execution
    _content(r"Invoke-Expression.*Invoke-WebRequest", "Executing remote script", ASK, re.I),
    _content(r"Invoke-Expression.*\(New-Object.*WebClient\)", "Executing downloaded content", ASK, re.I),
    _content(r"IEX\s*\(\s*\(New-Object", "IEX with WebClient (common malware pattern)", DENY, re.I),
    _content(r"IEX\s*\(Invoke-WebRequest", "IEX with web request", ASK, re.I),
    _content(r"DownloadString\s*\(", "Downloading and potentially executing string", ASK, re.I),
    # Credentials
    _content(r"Get-Credential", "Credential prompt", ASK, re.I),
    _content(r"ConvertTo-SecureString.*-AsPlainText", "Converting plain text to secure string", ASK, re.I),
    _content(r"Get-StoredCredential", "Accessing stored credentials", ASK, re.I),
    # Registry
    _content(r"Set-ItemProperty.*HKLM:", "Modifying HKEY_LOCAL_MACHINE registry", DENY, re.I),
    _content(r"New-ItemProperty.*HKLM:", "Adding to HKEY_LOCAL_MACHINE registry", DENY, re.I),
    _content(r"Remove-ItemProperty.*HKLM:", "Removing from HKEY_LOCAL_MACHINE registry", DENY, re.I),
    _content(r"reg\s+add\s+HKLM", "Adding to HKLM registry via reg.exe", DENY, re.I),
    # Services
    _content(r"Stop-Service\s+.*Windows", "Stopping Windows service", ASK, re.I),
    _content(r"Set-Service.*-StartupType\s+Disabled", "Disabling service", ASK, re.I),
    _content(r"New-Service", "Creating new service", ASK, re.I),
    # Firewall and Defender
    _content(r"Set-NetFirewallProfile.*-Enabled\s+False", "Disabling firewall", DENY, re.I),
    _content(r"netsh\s+.*firewall.*disable", "Disabling firewall via netsh", DENY, re.I),
    _content(r"Set-MpPreference.*-DisableRealtimeMonitoring", "Disabling Windows Defender", DENY, re.I),
    _content(r"Add-MpPreference.*-ExclusionPath", "Adding Defender exclusion", ASK, re.I),
    # Scheduled tasks
    _content(r"Register-ScheduledTask", "Creating scheduled task", ASK, re.I),
    _content(r"schtasks\s+/create", "Creating scheduled task via schtasks", ASK, re.I),
    # Git
    _content(r"git\s+push.*--force", "Force push can overwrite remote history", ASK, re.I),
    _content(r"git\s+reset\s+--hard", "Hard reset can lose uncommitted changes", ASK, re.I),
    # Encoded commands and elevation
    _content(r"-EncodedCommand", "Executing encoded PowerShell command", ASK, re.I),
    _content(r"-enc\s+[A-Za-z0-9+/=]+", "Executing encoded command", ASK, re.I),
    _content(r"Start-Process.*-Verb\s+RunAs", "Elevating to administrator", ASK, re.I),
)

WRITE_PATH_PATTERNS: tuple[BuiltinPattern, ...] = (
    _path(r"\.ssh[\\/](authorized_keys|id_rsa|config)", "Modification of SSH configuration", DENY),
    _path(r"\.(bashrc|zshrc|profile|bash_profile)$", "Shell configuration modification", ASK),
    _path(r"\.gitconfig$", "Git configuration modification", ASK),
    _path(r"[\\/]etc[\\/]", "System configuration modification", DENY),
    _path(r"\.(env|env\.local|env\.production)$", "Environment file modification", ASK),
    _path(r"\.aws[\\/]credentials$", "AWS credentials modification", DENY),
    _path(r"\.kube[\\/]config$", "Kubernetes config modification", DENY),
    _path(r"cron", "Cron job modification", DENY),
    # Windows
    _path(r"Microsoft\.PowerShell_profile\.ps1$", "PowerShell profile modification", ASK, re.I),
    _path(r"\$PROFILE", "PowerShell profile modification", ASK, re.I),
    _path(r"System32[\\/]", "System32 modification", DENY, re.I),
    _path(r"Windows[\\/]System", "Windows system modification", DENY, re.I),
    _path(r"hosts$", "Hosts file modification", DENY, re.I),
)

READ_PATH_PATTERNS: tuple[BuiltinPattern, ...] = (
    _path(r"\.ssh[\\/](id_rsa|id_ed25519|id_ecdsa)$", "Reading SSH private keys", DENY),
    _path(r"\.aws[\\/]credentials$", "Reading AWS credentials", DENY),
    _path(r"\.netrc$", "Reading .netrc credentials", DENY),
    _path(r"[\\/]etc[\\/](passwd|shadow)$", "Reading system password files", DENY),
    _path(r"\.kube[\\/]config$", "Reading Kubernetes config", ASK),
    _path(r"\.gnupg/", "Reading GPG private data", DENY),
)

SEARCH_PATH_PATTERNS: tuple[BuiltinPattern, ...] = (
    _path(r"\.ssh/", "Searching in SSH directory", DENY),
    _path(r"\.aws/", "Searching in AWS config directory", DENY),
    _path(r"\.gnupg/", "Searching in GPG directory", DENY),
    _path(r"\.config/gh/", "Searching in GitHub CLI config", ASK),
)

WEB_FETCH_PATTERNS: tuple[BuiltinPattern, ...] = (
    _content(r"file://", "Local file access via URL", DENY),
    _content(r"169\.254\.169\.254", "Cloud metadata endpoint access", DENY),
    _content(r"localhost|127\.0\.0\.1", "Local service access", ASK),
)

TASK_PATTERNS: tuple[BuiltinPattern, ...] = (
    _content(r"sudo|admin|root|elevated", "Task may request elevated privileges", ASK, re.I),
    _content(r"install.*system|system.*install", "Task may install system-wide packages", ASK, re.I),
    _content(r"delete.*all|remove.*all|clear.*all", "Task may perform bulk deletion", ASK, re.I),
)

MCP_PATTERNS: tuple[BuiltinPattern, ...] = (
    _content(r"filesystem.*write|write.*file", "MCP filesystem write operation", ASK, re.I),
    _content(
        r"database.*drop|drop.*database|delete.*table",
        "MCP destructive database operation",
        DENY,
        re.I,
    ),
    _content(r"execute.*sql|sql.*execute", "MCP SQL execution", ASK, re.I),
    _content(r"send.*message|post.*message", "MCP external messaging", ASK, re.I),
)

BUILTIN_PATTERNS: dict[ToolType, tuple[BuiltinPattern, ...]] = {
    ToolType.BASH: BASH_PATTERNS,
    ToolType.POWERSHELL: POWERSHELL_PATTERNS,
    ToolType.WRITE: WRITE_PATH_PATTERNS,
    ToolType.EDIT: WRITE_PATH_PATTERNS,
    ToolType.NOTEBOOK_EDIT: WRITE_PATH_PATTERNS,
    ToolType.READ: READ_PATH_PATTERNS,
    ToolType.GLOB: SEARCH_PATH_PATTERNS,
    ToolType.GREP: SEARCH_PATH_PATTERNS,
    ToolType.WEB_FETCH: WEB_FETCH_PATTERNS,
    ToolType.WEB_SEARCH: (),
    ToolType.TASK: TASK_PATTERNS,
    ToolType.MCP: MCP_PATTERNS,
}


def builtin_rule_name(tool_type: ToolType) -> str:
    """Name reported as matched_rule for a built-in hit."""
    return f"builtin:{tool_type.value}"
