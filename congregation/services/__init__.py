"""Document store, subscriptions, gateway and background services"""
