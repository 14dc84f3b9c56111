"""Account status service: the server half of the blocked-account contract."""
