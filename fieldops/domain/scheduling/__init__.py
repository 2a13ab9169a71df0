"""Scheduling domain - service-day rules, day routing and availability"""
