from dither_some.cli import main

main()
