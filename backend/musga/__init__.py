"""Musga - vocal licensing marketplace backend"""
