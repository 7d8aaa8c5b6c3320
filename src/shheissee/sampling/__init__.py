"""Domain samplers (Wi-Fi, Bluetooth, BLE, radio, network)."""

from shheissee.sampling.ble import BleSampler  # noqa: F401
from shheissee.sampling.bluetooth import BluetoothSampler  # noqa: F401
from shheissee.sampling.network import NetworkSampler  # noqa: F401
from shheissee.sampling.radio import RadioSampler  # noqa: F401
from shheissee.sampling.wifi import WifiSampler  # noqa: F401
