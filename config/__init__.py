"""Login throttle configuration"""
