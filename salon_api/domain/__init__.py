"""Salon booking domains"""
