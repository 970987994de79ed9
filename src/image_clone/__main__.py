from image_clone.cli import main

main()
