"""
FastAPI dependencies resolving the service objects built at startup.
"""

from fastapi import Request

from pet_boarding.services.lifecycle import OrderLifecycleController


def get_controller(request: Request) -> OrderLifecycleController:
    return request.app.state.controller
