#!/usr/bin/env python3
"""
Setup script for vkmax, an asyncio client for the VK MAX messenger
"""

from setuptools import setup, find_namespace_packages

setup(
    name="vkmax",
    version="0.1.0",
    description="Asyncio WebSocket client for the VK MAX messenger",
    packages=find_namespace_packages(include=["vkmax", "vkmax.*"]),
    install_requires=[
        "websockets==15.0",
        "aiohttp==3.10.10",
        "typer==0.12.3",
        "click>=8.0.0,<8.2",
        "rich==13.9.2",
        "aioconsole==0.8.1",
        "PyYAML==6.0.1",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
            "pytest-asyncio==1.2.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'vkmax=vkmax.client.max_cli:main',
        ],
    },
)
