from ngsi_source.adapters.memory import MemoryOutputs, StaticPreferences
from ngsi_source.adapters.mqtt import MqttConfig, MqttOutputs

__all__ = ["MemoryOutputs", "StaticPreferences", "MqttConfig", "MqttOutputs"]
