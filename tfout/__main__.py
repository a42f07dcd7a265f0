"""Run the tfout command line tool."""

from tfout.tool.tfout import main

if __name__ == "__main__":
    main()
