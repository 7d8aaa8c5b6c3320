"""Attack heuristics over domain samples."""

from shheissee.detection.bluetooth import detect_bluetooth_attacks  # noqa: F401
from shheissee.detection.network import detect_suspicious_ports, scan_suspicious_ports  # noqa: F401
from shheissee.detection.wifi import detect_wifi_attacks  # noqa: F401
