from setuptools import find_packages, setup

setup(
    name="glint",
    version="0.1.0",
    packages=find_packages("src"),
    package_dir={"": "src"},
    package_data={"glint": ["js/*.mjs"]},
    url="http://github.com/chrisrink10/glint",
    license="MIT License",
    author="Christopher Rink",
    author_email="chrisrink10@gmail.com",
    description="A compiler from a Clojure dialect to JavaScript modules",
    python_requires=">=3.9",
    install_requires=[
        "attrs>=22.2.0",
        "immutables>=0.20,<1.0.0",
        "prompt-toolkit>=3.0.0,<4.0.0",
        "pyrsistent>=0.18.0,<1.0.0",
        "typing-extensions>=4.7.0,<5.0.0",
    ],
    extras_require={
        "pygments": ["pygments>=2.9.0,<3.0.0"],
        "test": ["pytest>=7.0.0,<9.0.0"],
    },
    entry_points={"console_scripts": ["glint=glint.cli:invoke_cli"]},
)
