"""CampusCore academic records API."""
