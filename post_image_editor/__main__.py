from post_image_editor.app import main

main()
