"""Marketplace webhook receiver: validates marketplace events and stores them in DynamoDB."""

__version__ = '0.1.0'
