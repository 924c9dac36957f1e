from setuptools import setup


setup(
    name="sheet-gantt",
    version="0.1.0",
    description="Turn messy task spreadsheets into styled Gantt chart workbooks",
    packages=["sheet_gantt"],
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "xlrd",
        "streamlit",
        "requests",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "sheet-gantt=sheet_gantt.cli:main",
        ]
    },
)
