"""
Teams Bot Provisioner

Registers a Microsoft Teams bot on Azure (app registration, client secret,
Graph permission, Azure Bot resource, Teams channel) and builds the
sideloadable Teams app package.
"""

__version__ = "1.0.0"
__author__ = "Teams Bot Provisioner Team"
