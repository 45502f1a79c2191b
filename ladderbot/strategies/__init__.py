"""Trading strategies"""
