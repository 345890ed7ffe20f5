"""
Service Dependency.

Exposes the ``Services`` bundle attached to the application to API endpoints.
"""

from typing import Annotated

from fastapi import Depends, Request

from agentworks.factory import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


ServicesDep = Annotated[Services, Depends(get_services)]
