"""Post-startup provisioning for the local Telegraf/InfluxDB 3/Grafana stack."""

__version__ = "0.1.0"
