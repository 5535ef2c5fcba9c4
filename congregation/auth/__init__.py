"""Identity, sessions and authorization rules"""
