"""Salon booking API - WhatsApp appointment reminders"""
