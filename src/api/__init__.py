"""
Exposed Matching and Admin APIs.

- service: VenueMatchingService, the in-process facade
- main: FastAPI app over the service
"""
