"""fleetgen CLI commands"""
